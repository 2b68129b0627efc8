"""
Storage module for persisting refund claims.

Provides SQLite-based storage for:
- Wizard drafts (resumable snapshots)
- Submitted claims with their resolved route
"""

from .claim_store import (
    ClaimStore,
    StoredClaim,
    get_claim_store,
    save_submission,
    get_claim,
    list_claims,
    update_claim_status,
)

__all__ = [
    "ClaimStore",
    "StoredClaim",
    "get_claim_store",
    "save_submission",
    "get_claim",
    "list_claims",
    "update_claim_status",
]

"""
SQLite-based claim storage.

Stores wizard drafts and submitted claims in a local SQLite database.
No external database setup required - just works.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

from ..utils.config import settings
from ..wizard.schema import ClaimStatus, ClaimSubmission
from ..wizard.state_manager import ClaimWizardController

logger = logging.getLogger(__name__)


@dataclass
class StoredClaim:
    """A claim record as stored in the database."""
    claim_id: str
    created_at: str
    updated_at: str
    status: str  # draft, identifiers_pending, evidence_missing, ready_for_review, submitted, exported, decided

    # Terminal (or latest) answers, channel-inapplicable field removed
    answers: dict

    # Routing (nullable until the wizard completes)
    route: Optional[str] = None
    route_result: Optional[dict] = None

    # Full wizard snapshot for resuming drafts
    snapshot: Optional[dict] = None
    notes: Optional[str] = None


class ClaimStore:
    """
    SQLite-based storage for refund claims.

    Usage:
        store = ClaimStore()

        # Keep a draft while the user is mid-wizard
        store.save_draft(controller)

        # Resume it later
        controller = store.load_draft(claim_id)

        # Persist completed claims (also usable as a completion sink)
        controller.add_sink(store)

        # List all
        claims = store.list_all(route="BOR286")
    """

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize the claim store."""
        self.db_path = Path(db_path or settings.database_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Create tables if they don't exist."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS claims (
                    claim_id TEXT PRIMARY KEY,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'draft',
                    route TEXT,

                    -- Claim data (JSON)
                    answers TEXT NOT NULL DEFAULT '{}',
                    route_result TEXT,
                    snapshot TEXT,

                    notes TEXT
                )
            """)

            conn.execute("CREATE INDEX IF NOT EXISTS idx_claims_status ON claims(status)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_claims_route ON claims(route)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_claims_created ON claims(created_at)")

            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _upsert(
        self,
        claim_id: str,
        status: str,
        answers: dict,
        route: Optional[str] = None,
        route_result: Optional[dict] = None,
        snapshot: Optional[dict] = None,
    ) -> None:
        now = datetime.now(timezone.utc).isoformat()

        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO claims (
                    claim_id, created_at, updated_at, status, route,
                    answers, route_result, snapshot
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(claim_id) DO UPDATE SET
                    updated_at = excluded.updated_at,
                    status = excluded.status,
                    route = excluded.route,
                    answers = excluded.answers,
                    route_result = excluded.route_result,
                    snapshot = COALESCE(excluded.snapshot, claims.snapshot)
            """, (
                claim_id,
                now,
                now,
                status,
                route,
                json.dumps(answers),
                json.dumps(route_result) if route_result else None,
                json.dumps(snapshot) if snapshot else None,
            ))
            conn.commit()

    def save_draft(self, controller: ClaimWizardController) -> str:
        """
        Save an in-progress wizard so it can be resumed.

        Returns:
            The claim ID
        """
        route_result = controller.route_result
        self._upsert(
            claim_id=controller.claim_id,
            status=controller.claim_status().value,
            answers=controller.answers.to_record(),
            route=route_result.route.value if route_result else None,
            route_result=route_result.to_dict() if route_result else None,
            snapshot=controller.snapshot(),
        )
        logger.debug(f"Saved draft {controller.claim_id} ({controller.claim_status().value})")
        return controller.claim_id

    def save_submission(self, submission: ClaimSubmission) -> str:
        """
        Save a completed claim.

        Returns:
            The claim ID
        """
        self._upsert(
            claim_id=submission.claim_id,
            status=submission.status.value,
            answers=submission.answers,
            route=submission.route_result.route.value,
            route_result=submission.route_result.to_dict(),
            snapshot=submission.snapshot,
        )
        logger.info(f"Saved claim {submission.claim_id} on route {submission.route_result.route.value}")
        return submission.claim_id

    def __call__(self, submission: ClaimSubmission) -> None:
        """Completion sink: persist the submission."""
        self.save_submission(submission)

    def get(self, claim_id: str) -> Optional[StoredClaim]:
        """
        Retrieve a claim by ID.

        Returns:
            StoredClaim or None if not found
        """
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM claims WHERE claim_id = ?",
                (claim_id,)
            ).fetchone()

            if row:
                return self._row_to_stored_claim(row)
        return None

    def load_draft(self, claim_id: str) -> Optional[ClaimWizardController]:
        """Restore the stored wizard (in progress or completed), or None if there is no snapshot."""
        stored = self.get(claim_id)
        if stored is None or stored.snapshot is None:
            return None
        return ClaimWizardController.from_snapshot(stored.snapshot, sinks=[self])

    def list_all(
        self,
        status: Optional[Union[str, ClaimStatus]] = None,
        route: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[StoredClaim]:
        """
        List claims with optional filtering.

        Args:
            status: Filter by status
            route: Filter by claim route
            limit: Max results
            offset: Pagination offset

        Returns:
            List of StoredClaim objects
        """
        query = "SELECT * FROM claims WHERE 1=1"
        params: list = []

        if status:
            query += " AND status = ?"
            params.append(ClaimStatus(status).value)

        if route:
            query += " AND route = ?"
            params.append(str(getattr(route, "value", route)))

        query += " ORDER BY created_at DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._row_to_stored_claim(row) for row in rows]

    def update_status(
        self,
        claim_id: str,
        status: Union[str, ClaimStatus],
        notes: Optional[str] = None,
    ) -> bool:
        """
        Update claim status.

        Returns:
            True if updated, False if claim not found
        """
        now = datetime.now(timezone.utc).isoformat()
        status_value = ClaimStatus(status).value

        with self._get_connection() as conn:
            if notes:
                result = conn.execute(
                    "UPDATE claims SET status = ?, updated_at = ?, notes = ? WHERE claim_id = ?",
                    (status_value, now, notes, claim_id)
                )
            else:
                result = conn.execute(
                    "UPDATE claims SET status = ?, updated_at = ? WHERE claim_id = ?",
                    (status_value, now, claim_id)
                )
            conn.commit()
            return result.rowcount > 0

    def delete(self, claim_id: str) -> bool:
        """Delete a claim."""
        with self._get_connection() as conn:
            result = conn.execute(
                "DELETE FROM claims WHERE claim_id = ?",
                (claim_id,)
            )
            conn.commit()
            return result.rowcount > 0

    def count(self, status: Optional[Union[str, ClaimStatus]] = None) -> int:
        """Count claims, optionally by status."""
        with self._get_connection() as conn:
            if status:
                row = conn.execute(
                    "SELECT COUNT(*) FROM claims WHERE status = ?",
                    (ClaimStatus(status).value,)
                ).fetchone()
            else:
                row = conn.execute("SELECT COUNT(*) FROM claims").fetchone()
            return row[0]

    def _row_to_stored_claim(self, row: sqlite3.Row) -> StoredClaim:
        """Convert a database row to StoredClaim."""
        return StoredClaim(
            claim_id=row["claim_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            status=row["status"],
            route=row["route"],
            answers=json.loads(row["answers"]),
            route_result=json.loads(row["route_result"]) if row["route_result"] else None,
            snapshot=json.loads(row["snapshot"]) if row["snapshot"] else None,
            notes=row["notes"],
        )


# =============================================================================
# Convenience Functions
# =============================================================================

@lru_cache
def get_claim_store() -> ClaimStore:
    """Get the default claim store (singleton)."""
    return ClaimStore()


def save_submission(submission: ClaimSubmission) -> str:
    """Save a completed claim to the default store."""
    return get_claim_store().save_submission(submission)


def get_claim(claim_id: str) -> Optional[StoredClaim]:
    """Get a claim from the default store."""
    return get_claim_store().get(claim_id)


def list_claims(**kwargs) -> list[StoredClaim]:
    """List claims from the default store."""
    return get_claim_store().list_all(**kwargs)


def update_claim_status(claim_id: str, status: str, notes: Optional[str] = None) -> bool:
    """Update claim status in the default store."""
    return get_claim_store().update_status(claim_id, status, notes)

"""
Routing vocabulary for duty and import VAT refund claims.

Defines the answer enums the router reads and the RouteResult it produces.
"""

from enum import Enum
from typing import FrozenSet

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Answer Enums
# ============================================================================


class Channel(str, Enum):
    """How the package arrived."""
    COURIER = "courier"
    POSTAL = "postal"


class ClaimType(str, Enum):
    """Why the claimant wants money back."""
    OVERPAYMENT = "overpayment"
    REJECTED_IMPORT = "rejected_import"
    WITHDRAWAL = "withdrawal"
    LOW_VALUE = "low_value"


class Courier(str, Enum):
    """Couriers with a known playbook for obtaining MRN/EORI."""
    DHL = "DHL"
    FEDEX = "FedEx"
    UPS = "UPS"
    ROYAL_MAIL = "RoyalMail"


# ============================================================================
# Route Enums
# ============================================================================


class ClaimRoute(str, Enum):
    """Regulatory form or reclaim mechanism a claim is filed under."""
    CDS = "CDS"                      # Customs Declaration Service online claim
    C285 = "C285"                    # Repayment of import duty and VAT
    BOR286 = "BOR286"                # Postal import repayment
    CE1179 = "CE1179"                # Low value / returned goods
    VAT_RETURN = "VAT_RETURN"        # Reclaim on the business VAT return
    SELLER_REFUND = "SELLER_REFUND"  # Retailer-side refund, not an HMRC claim


class EvidenceType(str, Enum):
    """Documents a claim pack can ask for."""
    INVOICE = "invoice"
    PROOF_OF_POSTAL_CHARGE = "proof_of_postal_charge"
    TRANSPORT_DOC = "transport_doc"
    PACKING_LIST = "packing_list"
    ENTITLEMENT_PROOF = "entitlement_proof"
    SELLER_CONTACT = "seller_contact"
    CORRESPONDENCE = "correspondence"


class Identifier(str, Enum):
    """Reference numbers a route needs before it can be filed."""
    MRN = "mrn"
    EORI = "eori"
    CHARGE_REFERENCE = "charge_reference"


# ============================================================================
# Route Result
# ============================================================================


class RouteResult(BaseModel):
    """
    Outcome of routing a set of answers.

    Immutable so the same answers always compare equal to the same result.
    """

    model_config = ConfigDict(frozen=True)

    route: ClaimRoute = Field(description="Claim route the answers resolve to")
    required_evidence: FrozenSet[EvidenceType] = Field(
        default_factory=frozenset,
        description="Evidence tags the claim pack must include",
    )
    required_identifiers: FrozenSet[Identifier] = Field(
        default_factory=frozenset,
        description="Identifiers that must be collected before filing",
    )
    reason: str = Field(default="", description="Which routing rule matched")

    def to_dict(self) -> dict:
        """Convert to dictionary with stable ordering."""
        return {
            "route": self.route.value,
            "required_evidence": sorted(e.value for e in self.required_evidence),
            "required_identifiers": sorted(i.value for i in self.required_identifiers),
            "reason": self.reason,
        }

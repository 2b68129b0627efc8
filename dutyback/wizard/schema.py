"""
Wizard schema for an in-progress refund claim.

Defines the AnswerModel the wizard accumulates, the WizardState it tracks
and the ClaimSubmission handed to persistence once the wizard completes.
"""

import logging
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError

from ..routing.schema import Channel, ClaimType, Courier, EvidenceType, RouteResult

logger = logging.getLogger(__name__)


# ============================================================================
# Enums
# ============================================================================


class BranchKind(str, Enum):
    """Modal side-screens layered on top of a wizard step."""
    NONE = "none"
    BOR286 = "bor286"
    VAT_RETURN = "vat_return"
    SELLER_REFUND = "seller_refund"


class ClaimStatus(str, Enum):
    """Lifecycle of a claim record."""
    DRAFT = "draft"
    IDENTIFIERS_PENDING = "identifiers_pending"
    EVIDENCE_MISSING = "evidence_missing"
    READY_FOR_REVIEW = "ready_for_review"
    SUBMITTED = "submitted"
    EXPORTED = "exported"
    DECIDED = "decided"


# ============================================================================
# Answer coercion
# ============================================================================


_TRUE_STRINGS = {"yes", "y", "true", "1", "registered"}
_FALSE_STRINGS = {"no", "n", "false", "0", "not_registered", "unregistered"}

_CLAIM_TYPE_ALIASES = {
    "rejected": ClaimType.REJECTED_IMPORT,
}


def _normalize(value: str) -> str:
    return value.strip().lower().replace("-", "_").replace(" ", "_")


def _coerce_channel(value: Any) -> Channel:
    if isinstance(value, Channel):
        return value
    return Channel(_normalize(str(value)))


def _coerce_claim_type(value: Any) -> ClaimType:
    if isinstance(value, ClaimType):
        return value
    key = _normalize(str(value))
    if key in _CLAIM_TYPE_ALIASES:
        return _CLAIM_TYPE_ALIASES[key]
    return ClaimType(key)


def _coerce_courier(value: Any) -> Courier:
    if isinstance(value, Courier):
        return value
    key = _normalize(str(value)).replace("_", "")
    for courier in Courier:
        if courier.value.lower() == key:
            return courier
    raise ValueError(f"Unknown courier: {value!r}")


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    key = _normalize(str(value))
    if key in _TRUE_STRINGS:
        return True
    if key in _FALSE_STRINGS:
        return False
    raise ValueError(f"Cannot read {value!r} as yes/no")


def _coerce_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip())


def _coerce_identifier(value: Any) -> str:
    return str(value).strip().upper()


def _coerce_text(value: Any) -> str:
    return str(value).strip()


def _coerce_evidence(value: Any) -> Set[EvidenceType]:
    if isinstance(value, (str, EvidenceType)):
        value = [value]
    elif not isinstance(value, (list, tuple, set, frozenset)):
        raise ValueError(f"Evidence must be a tag or a list of tags, got {value!r}")
    return {item if isinstance(item, EvidenceType) else EvidenceType(_normalize(str(item))) for item in value}


_COERCERS: Dict[str, Callable[[Any], Any]] = {
    "channel": _coerce_channel,
    "vat_registered": _coerce_bool,
    "claim_type": _coerce_claim_type,
    "mrn": _coerce_identifier,
    "eori": _coerce_identifier,
    "courier": _coerce_courier,
    "charge_reference": _coerce_text,
    "import_date": _coerce_date,
    "evidence": _coerce_evidence,
    "seller_refund_acknowledged": _coerce_bool,
}


# ============================================================================
# Answer Model
# ============================================================================


AnswerListener = Callable[[List[str]], None]


class AnswerModel(BaseModel):
    """
    Answers collected for one in-progress claim.

    Mutated only through update_answers(), which notifies subscribers
    (the wizard controller) after every effective change.
    """

    model_config = ConfigDict(validate_assignment=True)

    # Routing answers
    channel: Optional[Channel] = Field(None, description="How the package arrived")
    vat_registered: Optional[bool] = Field(None, description="Whether the claimant is VAT registered")
    claim_type: Optional[ClaimType] = Field(None, description="Why the claimant wants a refund")

    # Identifiers collected later in the flow
    mrn: Optional[str] = Field(None, description="Movement Reference Number")
    eori: Optional[str] = Field(None, description="Economic Operator Registration and Identification number")

    # Channel-specific; only one applies, chosen by channel
    courier: Optional[Courier] = Field(None, description="Courier that delivered the package")
    charge_reference: Optional[str] = Field(None, description="Postal charge reference (BOR286 branch)")

    import_date: Optional[date] = Field(None, description="Date the goods were imported")
    evidence: Set[EvidenceType] = Field(default_factory=set, description="Evidence the claimant has on hand")
    seller_refund_acknowledged: bool = Field(
        default=False,
        description="Claimant confirmed they will ask the seller first (seller refund branch)",
    )

    _listeners: List[AnswerListener] = PrivateAttr(default_factory=list)

    def subscribe(self, listener: AnswerListener) -> None:
        """Register a callback invoked with the changed field names."""
        self._listeners.append(listener)

    def update_answers(self, partial: Dict[str, Any]) -> List[str]:
        """
        Merge a partial set of answers into the model.

        Values given as strings are coerced to the field's type
        ("Royal Mail" -> Courier.ROYAL_MAIL, "yes" -> True). None clears a
        field. Unknown fields and values that cannot be coerced are skipped
        with a warning; nothing is raised.

        Args:
            partial: Field names mapped to new values.

        Returns:
            Names of fields whose value changed.
        """
        partial = self._drop_conflicting_channel_fields(partial)
        updated = []

        for field_name, raw_value in partial.items():
            coercer = _COERCERS.get(field_name)
            if coercer is None:
                logger.warning(f"Ignoring unknown answer field: {field_name}")
                continue

            try:
                if raw_value is None:
                    value = type(self).model_fields[field_name].get_default(call_default_factory=True)
                else:
                    value = coercer(raw_value)
            except (ValueError, TypeError) as e:
                logger.warning(f"Ignoring invalid value for {field_name}: {e}")
                continue

            if getattr(self, field_name) == value:
                continue

            try:
                setattr(self, field_name, value)
            except ValidationError as e:
                logger.warning(f"Ignoring invalid value for {field_name}: {e}")
                continue

            updated.append(field_name)

        if updated:
            for listener in list(self._listeners):
                listener(updated)

        return updated

    def _drop_conflicting_channel_fields(self, partial: Dict[str, Any]) -> Dict[str, Any]:
        """Keep only the channel-applicable field when both courier and charge reference are given."""
        if partial.get("courier") is None or partial.get("charge_reference") is None:
            return partial

        channel = self.channel
        if "channel" in partial and partial["channel"] is not None:
            try:
                channel = _coerce_channel(partial["channel"])
            except ValueError:
                pass

        partial = dict(partial)
        if channel == Channel.POSTAL:
            dropped = partial.pop("courier")
            logger.warning(f"Dropping courier {dropped!r}: postal claims use a charge reference")
        else:
            dropped = partial.pop("charge_reference")
            logger.warning(f"Dropping charge reference {dropped!r}: only postal claims use one")
        return partial

    @property
    def applicable_courier(self) -> Optional[Courier]:
        """Courier, if the package came by courier."""
        return self.courier if self.channel == Channel.COURIER else None

    @property
    def applicable_charge_reference(self) -> Optional[str]:
        """Charge reference, if the package came by post."""
        return self.charge_reference if self.channel == Channel.POSTAL else None

    def to_record(self) -> dict:
        """Export answers for persistence, without the field the channel rules out."""
        data = self.model_dump(mode="json")
        data["courier"] = self.applicable_courier.value if self.applicable_courier else None
        data["charge_reference"] = self.applicable_charge_reference
        data["evidence"] = sorted(e.value for e in self.evidence)
        return data


# ============================================================================
# Wizard State
# ============================================================================


class WizardState(BaseModel):
    """Position of the wizard for one claim."""

    current_step: int = Field(default=1, ge=1, description="1-indexed current step")
    open_branch: BranchKind = Field(default=BranchKind.NONE, description="Branch screen currently open")
    completed: bool = Field(default=False, description="Whether the terminal step has been passed")
    route_result: Optional[RouteResult] = Field(default=None, description="Route resolved at completion")


class ClaimSubmission(BaseModel):
    """Finalized claim handed to persistence and export collaborators."""

    claim_id: str = Field(description="Unique claim identifier")
    status: ClaimStatus = Field(default=ClaimStatus.SUBMITTED)
    route_result: RouteResult = Field(description="Resolved claim route")
    answers: Dict[str, Any] = Field(description="Terminal answers, see AnswerModel.to_record()")
    completed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    snapshot: Optional[Dict[str, Any]] = Field(default=None, description="Completed wizard, see ClaimWizardController.snapshot()")

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "claim_id": self.claim_id,
            "status": self.status.value,
            "route_result": self.route_result.to_dict(),
            "answers": self.answers,
            "completed_at": self.completed_at.isoformat(),
        }

"""
Step completeness checks for the claim wizard.

Each wizard step has a completeness predicate expressed as a list of field
errors: a step is complete when its list is empty. Identifier and evidence
steps depend on the route the answers resolve to.
"""

import re
from datetime import date
from typing import Callable, List, Optional

from pydantic import BaseModel, Field

from ..routing.claim_routing import resolve_route
from ..routing.schema import EvidenceType, Identifier, RouteResult
from ..utils.errors import RoutingError
from .schema import AnswerModel


MRN_LENGTH = 18
MRN_PATTERN = re.compile(r"^[A-Z]{2}[0-9]{2}[A-Z0-9]{14}$")
EORI_PATTERN = re.compile(r"^GB[0-9]{12}$")
CHARGE_REFERENCE_MIN_LENGTH = 5
CHARGE_REFERENCE_MAX_LENGTH = 50


# Wizard step definitions, in order
WIZARD_STEPS = [
    {
        "id": 1,
        "title": "Channel",
        "description": "How was your item delivered?",
        "fields": ["channel"],
    },
    {
        "id": 2,
        "title": "VAT Status",
        "description": "Are you VAT registered?",
        "fields": ["vat_registered"],
    },
    {
        "id": 3,
        "title": "Claim Type",
        "description": "What type of claim?",
        "fields": ["claim_type"],
    },
    {
        "id": 4,
        "title": "Identifiers",
        "description": "MRN, EORI or charge reference",
        "fields": ["mrn", "eori", "charge_reference"],
    },
    {
        "id": 5,
        "title": "Evidence",
        "description": "Required documents",
        "fields": ["evidence"],
    },
    {
        "id": 6,
        "title": "Review",
        "description": "Review and submit claim",
        "fields": [],
    },
]

TOTAL_STEPS = len(WIZARD_STEPS)


class FieldError(BaseModel):
    """A missing or malformed answer."""

    field: str = Field(description="Answer field the error is about")
    message: str = Field(description="Message to show next to the field")


# ============================================================================
# Identifier validators
# ============================================================================


def validate_mrn(mrn: Optional[str]) -> Optional[FieldError]:
    """Check an MRN: 2 letters, 2 digits, then 14 alphanumerics."""
    if not mrn:
        return FieldError(field="mrn", message="MRN is required")

    if len(mrn) != MRN_LENGTH:
        return FieldError(
            field="mrn",
            message=f"MRN must be exactly {MRN_LENGTH} characters (currently {len(mrn)})",
        )

    if not MRN_PATTERN.match(mrn):
        return FieldError(
            field="mrn",
            message="MRN format is invalid. Must be 2 letters, 2 numbers, then 14 alphanumeric characters "
                    "(e.g., GB24123456789ABCDE)",
        )

    return None


def validate_eori(eori: Optional[str]) -> Optional[FieldError]:
    """Check a GB EORI: GB followed by 12 digits."""
    if not eori:
        return FieldError(field="eori", message="EORI is required")

    if not EORI_PATTERN.match(eori):
        return FieldError(
            field="eori",
            message="EORI format is invalid. Must start with GB followed by exactly 12 digits "
                    "(e.g., GB123456789012)",
        )

    return None


def validate_charge_reference(charge_reference: Optional[str]) -> Optional[FieldError]:
    """Check a postal charge reference."""
    if not charge_reference or not charge_reference.strip():
        return FieldError(field="charge_reference", message="Charge reference is required for postal claims")

    length = len(charge_reference.strip())
    if length < CHARGE_REFERENCE_MIN_LENGTH:
        return FieldError(
            field="charge_reference",
            message=f"Charge reference must be at least {CHARGE_REFERENCE_MIN_LENGTH} characters",
        )
    if length > CHARGE_REFERENCE_MAX_LENGTH:
        return FieldError(
            field="charge_reference",
            message=f"Charge reference must be at most {CHARGE_REFERENCE_MAX_LENGTH} characters",
        )

    return None


IDENTIFIER_CHECKS: dict[Identifier, Callable[[AnswerModel], Optional[FieldError]]] = {
    Identifier.MRN: lambda answers: validate_mrn(answers.mrn),
    Identifier.EORI: lambda answers: validate_eori(answers.eori),
    Identifier.CHARGE_REFERENCE: lambda answers: validate_charge_reference(answers.applicable_charge_reference),
}


# ============================================================================
# Step checks
# ============================================================================


def _route_or_errors(answers: AnswerModel, cds_cutover_date: Optional[date]) -> tuple[Optional[RouteResult], List[FieldError]]:
    try:
        return resolve_route(answers, cds_cutover_date), []
    except RoutingError as e:
        return None, [
            FieldError(field=name, message=f"Answer '{name}' is needed before this step")
            for name in e.fields
        ]


def missing_evidence(answers: AnswerModel, route_result: RouteResult) -> List[EvidenceType]:
    """Evidence the route requires that the claimant does not have yet."""
    return sorted(route_result.required_evidence - answers.evidence, key=lambda e: e.value)


def validate_step(step: int, answers: AnswerModel, cds_cutover_date: Optional[date] = None) -> List[FieldError]:
    """
    List what stops a step from being complete.

    Args:
        step: 1-indexed wizard step
        answers: Current answers
        cds_cutover_date: Passed through to the router for steps 4-6

    Returns:
        Field errors; empty when the step is complete
    """
    errors: List[FieldError] = []

    if step == 1:
        if answers.channel is None:
            errors.append(FieldError(field="channel", message="Please select how you received your package"))

    elif step == 2:
        if answers.vat_registered is None:
            errors.append(FieldError(field="vat_registered", message="Please select your VAT registration status"))

    elif step == 3:
        if answers.claim_type is None:
            errors.append(FieldError(field="claim_type", message="Please select the type of claim you want to make"))

    elif step == 4:
        route_result, errors = _route_or_errors(answers, cds_cutover_date)
        if route_result is not None:
            for identifier in sorted(route_result.required_identifiers, key=lambda i: i.value):
                error = IDENTIFIER_CHECKS[identifier](answers)
                if error:
                    errors.append(error)

    elif step == 5:
        route_result, errors = _route_or_errors(answers, cds_cutover_date)
        if route_result is not None:
            missing = missing_evidence(answers, route_result)
            if missing:
                errors.append(FieldError(
                    field="evidence",
                    message=f"Missing required evidence: {', '.join(e.value for e in missing)}",
                ))

    elif step == TOTAL_STEPS:
        # One error per field, earliest step wins
        for earlier in range(1, TOTAL_STEPS):
            for error in validate_step(earlier, answers, cds_cutover_date):
                if all(e.field != error.field for e in errors):
                    errors.append(error)

    else:
        errors.append(FieldError(field="step", message=f"Unknown wizard step: {step}"))

    return errors


def is_step_complete(step: int, answers: AnswerModel, cds_cutover_date: Optional[date] = None) -> bool:
    """Check whether a step's completeness predicate holds."""
    return len(validate_step(step, answers, cds_cutover_date)) == 0

"""
Claim wizard module.

Step-by-step intake of an import duty/VAT refund claim: answers, step
completeness and branch screens.
"""

from .schema import (
    # Enums
    BranchKind,
    ClaimStatus,
    # Models
    AnswerModel,
    WizardState,
    ClaimSubmission,
)
from .state_manager import ClaimWizardController, TransitionResult
from .validation import (
    TOTAL_STEPS,
    WIZARD_STEPS,
    FieldError,
    is_step_complete,
    validate_eori,
    validate_mrn,
    validate_charge_reference,
    validate_step,
)

__all__ = [
    # Classes
    "ClaimWizardController",
    "TransitionResult",
    "FieldError",
    # Enums
    "BranchKind",
    "ClaimStatus",
    # Models
    "AnswerModel",
    "WizardState",
    "ClaimSubmission",
    # Step checks
    "TOTAL_STEPS",
    "WIZARD_STEPS",
    "is_step_complete",
    "validate_step",
    "validate_mrn",
    "validate_eori",
    "validate_charge_reference",
]

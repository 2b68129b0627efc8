"""
Claim wizard controller for tracking refund claim progress.

Owns the AnswerModel and the WizardState for one claim, re-derives step
completion after every answer change and runs the step/branch transitions.
Rejected transitions come back as signals inside a TransitionResult.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from ..routing.claim_routing import check_deadline, get_route_info, resolve_route
from ..routing.schema import Channel, ClaimType, RouteResult
from ..utils.config import settings
from ..utils.errors import (
    RoutingError,
    Signal,
    UnroutableAnswers,
    branch_incomplete,
    cannot_advance,
)
from .schema import AnswerModel, BranchKind, ClaimStatus, ClaimSubmission, WizardState
from .validation import TOTAL_STEPS, WIZARD_STEPS, FieldError, missing_evidence, validate_step

logger = logging.getLogger(__name__)


CompletionSink = Callable[[ClaimSubmission], None]


# Field each branch needs before it may be closed
BRANCH_REQUIREMENTS: Dict[BranchKind, Dict[str, Any]] = {
    BranchKind.BOR286: {
        "field": "charge_reference",
        "check": lambda answers: bool((answers.charge_reference or "").strip()),
        "message": "Enter the charge reference from your postal charge notice",
    },
    BranchKind.SELLER_REFUND: {
        "field": "seller_refund_acknowledged",
        "check": lambda answers: answers.seller_refund_acknowledged,
        "message": "Confirm you will request the refund from the seller first",
    },
}


@dataclass
class TransitionResult:
    """Outcome of a wizard transition."""
    ok: bool
    current_step: int
    open_branch: BranchKind
    signal: Optional[Signal] = None
    route_result: Optional[RouteResult] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "ok": self.ok,
            "current_step": self.current_step,
            "open_branch": self.open_branch.value,
            "signal": self.signal.to_dict() if self.signal else None,
            "route_result": self.route_result.to_dict() if self.route_result else None,
        }


class ClaimWizardController:
    """
    Runs the refund claim wizard for one in-progress claim.

    Steps 1..6 (channel, VAT status, claim type, identifiers, evidence,
    review) with at most one branch screen open on top of the current
    step. Passing the review step resolves the claim route and hands the
    submission to the completion sinks.
    """

    def __init__(
        self,
        answers: Optional[AnswerModel] = None,
        claim_id: Optional[str] = None,
        cds_cutover_date: Optional[date] = None,
        sinks: Optional[List[CompletionSink]] = None,
    ):
        """
        Initialize a new claim wizard.

        Args:
            answers: Answers to start from (e.g. a restored draft)
            claim_id: Claim identifier; generated if not given
            cds_cutover_date: CDS cutover for routing; read from settings if None
            sinks: Callables receiving the ClaimSubmission on completion
        """
        self.claim_id = claim_id or f"CLM-{uuid.uuid4().hex[:12].upper()}"
        self.cds_cutover_date = cds_cutover_date if cds_cutover_date is not None else settings.cds_cutover_date
        self.created_at = datetime.now(timezone.utc)

        self.answers = answers if answers is not None else AnswerModel()
        self.state = WizardState()

        self._sinks: List[CompletionSink] = list(sinks or [])
        self._step_completion: Dict[int, bool] = {}
        self._history: List[dict] = []

        self.answers.subscribe(self._on_answers_changed)
        self._recompute_completion()

    # =========================================================================
    # Read-only views
    # =========================================================================

    @property
    def current_step(self) -> int:
        return self.state.current_step

    @property
    def current_branch(self) -> BranchKind:
        return self.state.open_branch

    @property
    def is_complete(self) -> bool:
        return self.state.completed

    @property
    def route_result(self) -> Optional[RouteResult]:
        return self.state.route_result

    @property
    def step_completion(self) -> Dict[int, bool]:
        """Completion per step, derived from the answers."""
        return dict(self._step_completion)

    @property
    def history(self) -> List[dict]:
        return list(self._history)

    def add_sink(self, sink: CompletionSink) -> None:
        """Register a callable receiving the submission on completion."""
        self._sinks.append(sink)

    # =========================================================================
    # Answers
    # =========================================================================

    def update_answers(self, partial: Dict[str, Any]) -> List[str]:
        """Merge answers into the claim. Returns the fields that changed."""
        return self.answers.update_answers(partial)

    def _on_answers_changed(self, updated: List[str]) -> None:
        logger.debug(f"Claim {self.claim_id} answers changed: {updated}")
        if self.state.completed:
            logger.info(f"Claim {self.claim_id} answers changed after completion, reopening")
            self.state.completed = False
            self.state.route_result = None
        self._recompute_completion()

    def _recompute_completion(self) -> None:
        self._step_completion = {
            step["id"]: not validate_step(step["id"], self.answers, self.cds_cutover_date)
            for step in WIZARD_STEPS
        }

    def step_errors(self, step: Optional[int] = None) -> List[FieldError]:
        """Field errors keeping a step (default: current) from completing."""
        if step is None:
            step = self.state.current_step
        return validate_step(step, self.answers, self.cds_cutover_date)

    def missing_evidence(self) -> List[str]:
        """Evidence the resolved route needs that the claimant has not got."""
        route_result, _ = self.route_preview()
        if route_result is None:
            return []
        return [e.value for e in missing_evidence(self.answers, route_result)]

    def route_preview(self) -> tuple[Optional[RouteResult], Optional[Signal]]:
        """Resolve the route for the current answers without completing the wizard."""
        try:
            return resolve_route(self.answers, self.cds_cutover_date), None
        except RoutingError as e:
            return None, self._routing_signal(e)

    # =========================================================================
    # Step transitions
    # =========================================================================

    def advance(self) -> TransitionResult:
        """
        Move to the next step if the current one is complete.

        At the final step this resolves the route, marks the wizard
        complete and notifies the completion sinks instead.
        """
        step = self.state.current_step

        if self.state.open_branch != BranchKind.NONE:
            return self._reject("advance", cannot_advance(
                step,
                f"Close the {self.state.open_branch.value} screen before continuing",
            ))

        if self.state.completed:
            return self._reject("advance", cannot_advance(step, "Claim is already complete"))

        errors = self.step_errors(step)
        if errors:
            return self._reject("advance", cannot_advance(
                step,
                "; ".join(e.message for e in errors),
                fields=[e.field for e in errors],
            ))

        if step < TOTAL_STEPS:
            self.state.current_step = step + 1
            logger.info(f"Claim {self.claim_id} advanced to step {self.state.current_step}")
            return self._accept("advance")

        try:
            route_result = resolve_route(self.answers, self.cds_cutover_date)
        except RoutingError as e:
            logger.error(f"Claim {self.claim_id} could not be routed: {e}")
            return self._reject("advance", self._routing_signal(e, step))

        self.state.completed = True
        self.state.route_result = route_result
        logger.info(f"Claim {self.claim_id} complete: {route_result.route.value} - {route_result.reason}")

        self._notify_sinks(self.finalize())
        return self._accept("advance")

    def retreat(self) -> TransitionResult:
        """Go back one step. Answers are kept."""
        if self.state.current_step > 1:
            self.state.current_step -= 1
            logger.info(f"Claim {self.claim_id} back to step {self.state.current_step}")
        return self._accept("retreat")

    def go_to_step(self, step: int) -> TransitionResult:
        """
        Jump to a step.

        Backwards jumps are always allowed; forward jumps only across
        complete steps and with no branch open.
        """
        current = self.state.current_step

        if not 1 <= step <= TOTAL_STEPS:
            return self._reject("go_to_step", cannot_advance(current, f"There is no step {step}"))

        if step <= current:
            self.state.current_step = step
            return self._accept("go_to_step")

        if self.state.open_branch != BranchKind.NONE:
            return self._reject("go_to_step", cannot_advance(
                current,
                f"Close the {self.state.open_branch.value} screen before continuing",
            ))

        for intermediate in range(current, step):
            errors = self.step_errors(intermediate)
            if errors:
                return self._reject("go_to_step", cannot_advance(
                    intermediate,
                    "; ".join(e.message for e in errors),
                    fields=[e.field for e in errors],
                ))

        self.state.current_step = step
        return self._accept("go_to_step")

    # =========================================================================
    # Branch transitions
    # =========================================================================

    def open_branch(self, kind: Union[BranchKind, str]) -> TransitionResult:
        """Open a branch screen over the current step."""
        kind = BranchKind(kind)
        if kind == BranchKind.NONE:
            return self.close_branch()

        if self.state.open_branch not in (BranchKind.NONE, kind):
            logger.info(f"Claim {self.claim_id} replacing branch {self.state.open_branch.value} with {kind.value}")

        self.state.open_branch = kind
        return self._accept("open_branch")

    def close_branch(self) -> TransitionResult:
        """Close the open branch once its required field is filled."""
        branch = self.state.open_branch
        requirement = BRANCH_REQUIREMENTS.get(branch)

        if requirement and not requirement["check"](self.answers):
            return self._reject("close_branch", branch_incomplete(
                branch.value,
                requirement["message"],
                fields=[requirement["field"]],
            ))

        self.state.open_branch = BranchKind.NONE
        return self._accept("close_branch")

    def cancel_branch(self) -> TransitionResult:
        """Leave the open branch without completing it ("back to wizard")."""
        self.state.open_branch = BranchKind.NONE
        return self._accept("cancel_branch")

    def suggested_branch(self) -> BranchKind:
        """Branch screen the answer on the current step calls for."""
        step = self.state.current_step
        if step == 1 and self.answers.channel == Channel.POSTAL:
            return BranchKind.BOR286
        if step == 2 and self.answers.vat_registered is True:
            return BranchKind.VAT_RETURN
        if step == 3 and self.answers.claim_type == ClaimType.WITHDRAWAL:
            return BranchKind.SELLER_REFUND
        return BranchKind.NONE

    # =========================================================================
    # Bookkeeping
    # =========================================================================

    def _routing_signal(self, error: RoutingError, step: Optional[int] = None) -> Signal:
        signal = error.to_signal(step)
        if isinstance(error, UnroutableAnswers):
            signal.recoverable = False
            signal.fallback_action = f"Contact support at {settings.support_email}"
        return signal

    def _accept(self, action: str) -> TransitionResult:
        self._record(action, ok=True)
        return TransitionResult(
            ok=True,
            current_step=self.state.current_step,
            open_branch=self.state.open_branch,
            route_result=self.state.route_result,
        )

    def _reject(self, action: str, signal: Signal) -> TransitionResult:
        logger.info(f"Claim {self.claim_id} {action} rejected: {signal.kind.value} - {signal.message}")
        self._record(action, ok=False, signal=signal)
        return TransitionResult(
            ok=False,
            current_step=self.state.current_step,
            open_branch=self.state.open_branch,
            signal=signal,
            route_result=self.state.route_result,
        )

    def _record(self, action: str, ok: bool, signal: Optional[Signal] = None) -> None:
        self._history.append({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "action": action,
            "ok": ok,
            "step": self.state.current_step,
            "branch": self.state.open_branch.value,
            "signal": signal.kind.value if signal else None,
        })

    def _notify_sinks(self, submission: ClaimSubmission) -> None:
        for sink in self._sinks:
            try:
                sink(submission)
            except Exception as e:
                # Sinks are fire-and-forget; the wizard stays complete
                logger.error(f"Completion sink failed for claim {self.claim_id}: {e}", exc_info=True)

    # =========================================================================
    # Status and export
    # =========================================================================

    def claim_status(self) -> ClaimStatus:
        """Status to store the claim under."""
        if self.state.completed:
            return ClaimStatus.SUBMITTED
        if not all(self._step_completion[step] for step in (1, 2, 3)):
            return ClaimStatus.DRAFT
        if not self._step_completion[4]:
            return ClaimStatus.IDENTIFIERS_PENDING
        if not self._step_completion[5]:
            return ClaimStatus.EVIDENCE_MISSING
        return ClaimStatus.READY_FOR_REVIEW

    def finalize(self) -> Optional[ClaimSubmission]:
        """Build the submission for a completed wizard, or None if not complete."""
        if not self.state.completed or self.state.route_result is None:
            return None
        return ClaimSubmission(
            claim_id=self.claim_id,
            route_result=self.state.route_result,
            answers=self.answers.to_record(),
            snapshot=self.snapshot(),
        )

    def snapshot(self) -> dict:
        """Export the full wizard for draft persistence."""
        return {
            "claim_id": self.claim_id,
            "created_at": self.created_at.isoformat(),
            "cds_cutover_date": self.cds_cutover_date.isoformat() if self.cds_cutover_date else None,
            "answers": self.answers.model_dump(mode="json"),
            "state": self.state.model_dump(mode="json"),
            "step_completion": {str(step): done for step, done in self._step_completion.items()},
            "history": list(self._history),
        }

    @classmethod
    def from_snapshot(cls, data: dict, sinks: Optional[List[CompletionSink]] = None) -> "ClaimWizardController":
        """Restore a wizard saved with snapshot()."""
        cutover = data.get("cds_cutover_date")
        controller = cls(
            answers=AnswerModel.model_validate(data.get("answers", {})),
            claim_id=data.get("claim_id"),
            sinks=sinks,
        )
        # A saved "no cutover" must not pick up the configured default
        controller.cds_cutover_date = date.fromisoformat(cutover) if cutover else None
        controller._recompute_completion()
        controller.state = WizardState.model_validate(data.get("state", {}))
        controller._history = list(data.get("history", []))
        if data.get("created_at"):
            controller.created_at = datetime.fromisoformat(data["created_at"])
        return controller

    def get_summary(self) -> str:
        """Generate a human-readable summary of the claim so far."""
        lines = []
        answers = self.answers

        if answers.channel:
            lines.append(f"Channel: {answers.channel.value}")
        if answers.applicable_courier:
            lines.append(f"Courier: {answers.applicable_courier.value}")
        if answers.vat_registered is not None:
            lines.append(f"VAT registered: {'yes' if answers.vat_registered else 'no'}")
        if answers.claim_type:
            lines.append(f"Claim type: {answers.claim_type.value}")
        if answers.mrn:
            lines.append(f"MRN: {answers.mrn}")
        if answers.eori:
            lines.append(f"EORI: {answers.eori}")
        if answers.applicable_charge_reference:
            lines.append(f"Charge reference: {answers.applicable_charge_reference}")
        if answers.import_date:
            lines.append(f"Import date: {answers.import_date.isoformat()}")

        route_result, _ = self.route_preview()
        if route_result:
            info = get_route_info(route_result.route)
            lines.append(f"Route: {info.name}")
            lines.append(f"Deadline: {check_deadline(route_result.route, answers.import_date).message}")

        done = sum(1 for complete in self._step_completion.values() if complete)
        lines.append(f"\nSteps complete: {done}/{TOTAL_STEPS} (on step {self.state.current_step})")

        return "\n".join(lines) if lines else "No answers collected yet."

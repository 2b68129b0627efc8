"""Recoverable signals raised or returned by the claim routing engine."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class SignalKind(str, Enum):
    """Kinds of rejection the presentation layer has to interpret."""

    INCOMPLETE_ANSWERS = "incomplete_answers"
    UNROUTABLE_ANSWERS = "unroutable_answers"
    CANNOT_ADVANCE = "cannot_advance"
    BRANCH_INCOMPLETE = "branch_incomplete"


@dataclass
class Signal:
    """
    A rejected operation, described for the caller.

    Attributes:
        kind: What was rejected
        message: Human-readable explanation
        fields: Answer fields the user still has to provide or fix
        step: Wizard step the rejection relates to, if any
        branch: Branch screen the rejection relates to, if any
        recoverable: Whether the user can fix it without support
        fallback_action: What the UI should offer instead
    """

    kind: SignalKind
    message: str
    fields: List[str] = field(default_factory=list)
    step: Optional[int] = None
    branch: Optional[str] = None
    recoverable: bool = True
    fallback_action: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "fields": list(self.fields),
            "step": self.step,
            "branch": self.branch,
            "recoverable": self.recoverable,
            "fallback_action": self.fallback_action,
        }


class RoutingError(Exception):
    """Base class for answers the resolver cannot turn into a route."""

    kind: SignalKind = SignalKind.UNROUTABLE_ANSWERS
    fallback_action: Optional[str] = None

    def __init__(self, message: str, fields: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.fields = list(fields or [])

    def to_signal(self, step: Optional[int] = None) -> Signal:
        """Describe this error as a signal for the presentation layer."""
        return Signal(
            kind=self.kind,
            message=self.message,
            fields=self.fields,
            step=step,
            fallback_action=self.fallback_action,
        )


class IncompleteAnswers(RoutingError):
    """Routing was attempted before the deciding answers were given."""

    kind = SignalKind.INCOMPLETE_ANSWERS
    fallback_action = "Return to the step that asks for the missing answer"


class UnroutableAnswers(RoutingError):
    """No routing rule matched the answers."""

    kind = SignalKind.UNROUTABLE_ANSWERS
    fallback_action = "Contact support"


def cannot_advance(step: int, message: str, fields: Optional[List[str]] = None) -> Signal:
    """Signal for an advance attempted past an incomplete step."""
    return Signal(
        kind=SignalKind.CANNOT_ADVANCE,
        message=message,
        fields=list(fields or []),
        step=step,
        fallback_action="Highlight the missing fields",
    )


def branch_incomplete(branch: str, message: str, fields: Optional[List[str]] = None) -> Signal:
    """Signal for a branch closed before its required field was filled."""
    return Signal(
        kind=SignalKind.BRANCH_INCOMPLETE,
        message=message,
        fields=list(fields or []),
        branch=branch,
        fallback_action="Keep the branch open and highlight the missing input",
    )

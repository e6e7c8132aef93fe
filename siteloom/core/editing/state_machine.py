"""Edit lifecycle transitions.

draft -> pending_review -> approved | rejected

Transitions only move forward; approved and rejected are terminal. An
admin override skips the matrix (used to reopen or force-close edits).
"""

import logging
from typing import Dict, List

from ..errors import ValidationError

logger = logging.getLogger(__name__)


class StateTransitionError(ValidationError):
    """Raised when an edit status change is not allowed."""

    def __init__(self, current_status: str, requested_status: str, allowed: List[str]):
        allowed_text = ", ".join(allowed) if allowed else "nothing (terminal)"
        super().__init__(
            f"Invalid status transition: {current_status} -> {requested_status}. "
            f"From {current_status} an edit can move to: {allowed_text}.",
            current_status=current_status,
            requested_status=requested_status,
            allowed_transitions=allowed,
        )
        self.current_status = current_status
        self.requested_status = requested_status
        self.allowed_transitions = allowed


TRANSITION_MATRIX: Dict[str, List[str]] = {
    "draft": ["pending_review"],
    "pending_review": ["approved", "rejected"],
    "approved": [],
    "rejected": [],
}


def is_transition_valid(current_status: str, new_status: str) -> bool:
    return new_status in TRANSITION_MATRIX.get(current_status, [])


def validate_transition(current_status: str, new_status: str, override: bool = False) -> None:
    """Raise StateTransitionError unless ``current -> new`` is allowed.

    Same-status transitions are no-ops and always allowed.
    """
    if new_status not in TRANSITION_MATRIX:
        raise ValidationError(f"Unknown edit status: {new_status}", status=new_status)
    if current_status == new_status:
        return
    if override:
        logger.info(f"Admin override: edit {current_status} -> {new_status}")
        return
    if not is_transition_valid(current_status, new_status):
        error = StateTransitionError(
            current_status, new_status, TRANSITION_MATRIX.get(current_status, [])
        )
        logger.warning(f"Blocked transition: {error.message}")
        raise error

"""
Draft edit buffer and edit lifecycle.

Exports:
- EditService: draft CRUD and status changes
- validate_transition / StateTransitionError: lifecycle rules
"""

from .edits import EditService
from .state_machine import TRANSITION_MATRIX, StateTransitionError, validate_transition

__all__ = [
    "EditService",
    "TRANSITION_MATRIX",
    "StateTransitionError",
    "validate_transition",
]

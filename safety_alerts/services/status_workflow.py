"""
Status Workflow Engine - alert lifecycle state machine.

    active ──► resolved   (terminal)
       └─────► false      (terminal)

Expiry is not a state: an alert whose TTL has elapsed keeps its stored
status and simply drops out of the live view.
"""

from typing import Dict, List

from safety_alerts.core.errors import InvalidTransitionError
from safety_alerts.models.alert import AlertStatus


class StatusWorkflowEngine:
    """
    Transition rules for alert status.

    Rules:
    - resolve and mark-false are legal only from `active`
    - `resolved` and `false` are terminal
    """

    ALLOWED_TRANSITIONS: Dict[AlertStatus, List[AlertStatus]] = {
        AlertStatus.ACTIVE: [AlertStatus.RESOLVED, AlertStatus.FALSE],
        AlertStatus.RESOLVED: [],
        AlertStatus.FALSE: [],
    }

    @classmethod
    def is_valid_transition(cls, from_status: str, to_status: str) -> bool:
        try:
            from_enum = AlertStatus(from_status)
            to_enum = AlertStatus(to_status)
        except ValueError:
            return False
        return to_enum in cls.ALLOWED_TRANSITIONS.get(from_enum, [])

    @classmethod
    def get_allowed_transitions(cls, current_status: str) -> List[str]:
        try:
            current_enum = AlertStatus(current_status)
        except ValueError:
            return []
        return [status.value for status in cls.ALLOWED_TRANSITIONS.get(current_enum, [])]

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        try:
            return not cls.ALLOWED_TRANSITIONS[AlertStatus(status)]
        except (ValueError, KeyError):
            return False

    @classmethod
    def validate_transition(cls, current_status: str, new_status: str) -> None:
        """
        Raises:
            InvalidTransitionError: if the transition is not allowed
        """
        if not cls.is_valid_transition(current_status, new_status):
            if cls.is_terminal(current_status):
                raise InvalidTransitionError(
                    f"Alert is already {current_status}; {current_status} is a final status",
                    current_status=current_status,
                )
            allowed = cls.get_allowed_transitions(current_status)
            raise InvalidTransitionError(
                f"Invalid status transition: {current_status} → {new_status}. "
                f"Allowed transitions from {current_status}: {allowed}",
                current_status=current_status,
            )

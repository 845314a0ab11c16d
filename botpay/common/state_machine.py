"""Payment status transitions enforced by the reconciliation core."""

PENDING = "pending"
CONFIRMED = "confirmed"
FAILED = "failed"
EXPIRED = "expired"

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    PENDING: {CONFIRMED, FAILED, EXPIRED},
    CONFIRMED: set(),
    FAILED: set(),
    EXPIRED: set(),
}

TERMINAL_STATES = frozenset(status for status, targets in ALLOWED_TRANSITIONS.items() if not targets)


class IllegalTransition(ValueError):
    """Raised when a status change is not on the transition graph."""


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATES


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise IllegalTransition(f"Invalid transition: {current} -> {new}")

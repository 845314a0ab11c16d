"""Unit tests for payment status transition guardrails."""

import pytest

from botpay.common.state_machine import (
    ALLOWED_TRANSITIONS,
    CONFIRMED,
    EXPIRED,
    FAILED,
    PENDING,
    IllegalTransition,
    is_terminal,
    validate_transition,
)


@pytest.mark.parametrize("target", [CONFIRMED, FAILED, EXPIRED])
def test_pending_moves_to_any_terminal(target):
    validate_transition(PENDING, target)


def test_invalid_transition():
    """Illegal transition must raise to protect reconciliation correctness."""

    with pytest.raises(ValueError):
        validate_transition(PENDING, PENDING)


@pytest.mark.parametrize("terminal", [CONFIRMED, FAILED, EXPIRED])
def test_terminal_states_have_no_exit(terminal):
    assert is_terminal(terminal)
    for target in ALLOWED_TRANSITIONS:
        with pytest.raises(IllegalTransition):
            validate_transition(terminal, target)


def test_pending_is_not_terminal():
    assert not is_terminal(PENDING)


def test_unknown_status_is_rejected():
    with pytest.raises(IllegalTransition):
        validate_transition("refunded", CONFIRMED)

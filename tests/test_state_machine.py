"""Unit tests for core payment state-machine guardrails."""

import pytest

from payproc.common.state_machine import PaymentStatus, is_terminal, validate_transition


def test_valid_transition():
    """Sanity check: a legal transition should pass."""

    validate_transition(PaymentStatus.PENDING, PaymentStatus.SUCCESS)
    validate_transition(PaymentStatus.PENDING, PaymentStatus.FAILED)


def test_invalid_transition():
    """Terminal statuses are write-once."""

    with pytest.raises(ValueError):
        validate_transition(PaymentStatus.SUCCESS, PaymentStatus.FAILED)
    with pytest.raises(ValueError):
        validate_transition(PaymentStatus.FAILED, PaymentStatus.PENDING)


def test_pending_cannot_loop_back():
    with pytest.raises(ValueError):
        validate_transition(PaymentStatus.PENDING, PaymentStatus.PENDING)


def test_terminal_statuses():
    assert not is_terminal(PaymentStatus.PENDING)
    assert is_terminal(PaymentStatus.SUCCESS)
    assert is_terminal(PaymentStatus.FAILED)

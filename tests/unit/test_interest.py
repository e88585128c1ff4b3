"""Unit tests for simple-interest arithmetic and balance rules"""

import pytest
from datetime import date

from peerloan.domain.exceptions import ValidationError
from peerloan.domain.interest import (
    check_interest_rate,
    is_overdue,
    remaining_cents,
    simple_interest_total_cents,
)

pytestmark = pytest.mark.unit


def test_simple_interest_six_months():
    """12% a year over half a year adds 6%"""
    assert simple_interest_total_cents(1_000_000, 12, 6) == 1_060_000


def test_simple_interest_zero_rate():
    assert simple_interest_total_cents(10000, 0, 6) == 10000


def test_simple_interest_rounds_half_up():
    """333 * (1 + 0.05 * 1/12) = 334.3875 -> 334; 30 * 1.05 = 31.5 -> 32"""
    assert simple_interest_total_cents(333, 5, 1) == 334
    assert simple_interest_total_cents(30, 5, 12) == 32


def test_simple_interest_fractional_rate():
    assert simple_interest_total_cents(10000, 7.5, 12) == 10750


@pytest.mark.parametrize("rate", [0, 0.5, 12, 100])
def test_check_interest_rate_accepts_range(rate):
    assert check_interest_rate(rate) == rate


@pytest.mark.parametrize("rate", [-0.01, 100.01, None])
def test_check_interest_rate_rejects_out_of_range(rate):
    with pytest.raises(ValidationError):
        check_interest_rate(rate)


def test_remaining_cents_floors_at_zero():
    """Overpayment never produces a negative balance"""
    assert remaining_cents(10000, 4000) == 6000
    assert remaining_cents(10000, 12000) == 0
    assert remaining_cents(10000, 4000, forgiven_cents=6000) == 0


def test_is_overdue_requires_active_past_due_with_balance():
    due = date(2024, 7, 15)

    assert is_overdue("ACTIVE", due, 500, date(2024, 7, 16)) is True
    assert is_overdue("ACTIVE", due, 500, due) is False  # due today is not late
    assert is_overdue("ACTIVE", due, 0, date(2024, 8, 1)) is False
    assert is_overdue("COMPLETED", due, 500, date(2024, 8, 1)) is False
    assert is_overdue("LOAN_RECEIVED_PENDING", due, 500, date(2024, 8, 1)) is False
    assert is_overdue("ACTIVE", None, 500, date(2024, 8, 1)) is False

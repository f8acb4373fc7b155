"""Unit tests for the pricing and interest calculator"""

import pytest
from datetime import date
from decimal import Decimal
from bnpl_ledger.domain.exceptions import ValidationError
from bnpl_ledger.domain.models import FinancingPolicy, InterestType, PricedLine, PurchaseType
from bnpl_ledger.domain.pricing import (
    calculate_interest,
    calculate_late_fee,
    installments_for_tenor,
    months_for_installments,
    price_purchase,
    validate_tier_prices,
)

START = date(2026, 1, 10)


def make_policy(interest_type=InterestType.FLAT, rate="10", max_tenor_days=60, **kwargs) -> FinancingPolicy:
    return FinancingPolicy(
        interest_type=interest_type,
        interest_rate=Decimal(rate),
        grace_days=kwargs.pop("grace_days", 3),
        max_tenor_days=max_tenor_days,
        **kwargs,
    )


def test_flat_interest_is_one_time_charge():
    """FLAT 10% on 1000.00 -> 100.00 interest, 1100.00 total"""
    quote = price_purchase([PricedLine(100000, 1)], make_policy(), PurchaseType.CREDIT, start_date=START)

    assert quote.subtotal_cents == 100000
    assert quote.interest_cents == 10000
    assert quote.total_cents == 110000


def test_flat_interest_ignores_tenor():
    short = price_purchase([PricedLine(100000, 1)], make_policy(), PurchaseType.CREDIT, tenor_days=7, start_date=START)
    long = price_purchase([PricedLine(100000, 1)], make_policy(), PurchaseType.CREDIT, tenor_days=60, start_date=START)

    assert short.interest_cents == long.interest_cents == 10000


def test_monthly_interest_uses_weeks_per_month():
    """MONTHLY 5%, 8 weekly installments -> 2 months -> 100.00 interest"""
    policy = make_policy(InterestType.MONTHLY, "5")
    quote = price_purchase([PricedLine(100000, 1)], policy, PurchaseType.LAYAWAY, installments=8, start_date=START)

    assert quote.interest_cents == 10000
    assert quote.total_cents == 110000


def test_monthly_interest_rounds_months_up():
    policy = make_policy(InterestType.MONTHLY, "5")
    assert calculate_interest(100000, policy, PurchaseType.CREDIT, 5) == 10000  # ceil(5/4) = 2
    assert calculate_interest(100000, policy, PurchaseType.CREDIT, 4) == 5000


def test_monthly_interest_from_tenor_days():
    """30 days -> 5 weekly installments -> 2 months"""
    policy = make_policy(InterestType.MONTHLY, "5")
    quote = price_purchase([PricedLine(100000, 1)], policy, PurchaseType.CREDIT, tenor_days=30, start_date=START)

    assert installments_for_tenor(30) == 5
    assert quote.interest_cents == 10000


def test_cash_never_charges_interest():
    quote = price_purchase([PricedLine(100000, 2)], make_policy(rate="25"), PurchaseType.CASH, start_date=START)

    assert quote.interest_cents == 0
    assert quote.total_cents == 200000
    assert quote.due_date == START


def test_cash_allowed_without_policy():
    quote = price_purchase([PricedLine(5000, 3)], None, PurchaseType.CASH, start_date=START)
    assert quote.total_cents == 15000


def test_financed_sale_requires_policy():
    with pytest.raises(ValidationError):
        price_purchase([PricedLine(5000, 1)], None, PurchaseType.CREDIT, start_date=START)


def test_due_date_defaults_to_max_tenor():
    quote = price_purchase([PricedLine(5000, 1)], make_policy(max_tenor_days=45), PurchaseType.CREDIT, start_date=START)

    assert quote.tenor_days == 45
    assert quote.due_date == date(2026, 2, 24)


def test_requested_tenor_within_cap():
    quote = price_purchase(
        [PricedLine(5000, 1)], make_policy(), PurchaseType.LAYAWAY, tenor_days=30, start_date=START
    )
    assert quote.due_date == date(2026, 2, 9)


def test_tenor_beyond_policy_is_rejected():
    with pytest.raises(ValidationError, match="cannot exceed 60 days"):
        price_purchase([PricedLine(5000, 1)], make_policy(), PurchaseType.CREDIT, tenor_days=61, start_date=START)


def test_interest_rounds_half_up():
    """12.5% of 0.01 rounds to 0, 12.5% of 0.04 = 0.5 cent -> 1 cent"""
    policy = make_policy(rate="12.5")
    assert calculate_interest(1, policy, PurchaseType.CREDIT, 1) == 0
    assert calculate_interest(4, policy, PurchaseType.CREDIT, 1) == 1


@pytest.mark.parametrize("lines", [[], [PricedLine(1000, 0)], [PricedLine(-1, 1)]])
def test_invalid_cart_is_rejected(lines):
    with pytest.raises(ValidationError):
        price_purchase(lines, make_policy(), PurchaseType.CREDIT, start_date=START)


def test_months_mapping():
    assert [months_for_installments(n) for n in (1, 4, 5, 8, 9)] == [1, 1, 2, 2, 3]


def test_tier_prices_must_be_ordered():
    validate_tier_prices(900, 950, 1000)
    validate_tier_prices(1000, 1000, 1000)

    with pytest.raises(ValidationError):
        validate_tier_prices(1000, 950, 1100)
    with pytest.raises(ValidationError):
        validate_tier_prices(900, 1000, 950)


def test_late_fee_waits_for_grace_period():
    policy = make_policy(grace_days=3, late_fee_fixed_cents=500, late_fee_rate=Decimal("2"))
    due = date(2026, 3, 1)

    assert calculate_late_fee(60000, due, policy, as_of=date(2026, 3, 4)) == 0
    assert calculate_late_fee(60000, due, policy, as_of=date(2026, 3, 5)) == 500 + 1200


def test_late_fee_without_policy_or_balance():
    assert calculate_late_fee(60000, date(2026, 1, 1), None, as_of=date(2026, 3, 1)) == 0
    assert calculate_late_fee(0, date(2026, 1, 1), make_policy(late_fee_fixed_cents=500), as_of=date(2026, 3, 1)) == 0

"""Pricing & interest calculator - pure functions, no side effects"""

import math
from datetime import date
from decimal import Decimal
from typing import List, Optional

from bnpl_ledger.domain.exceptions import ValidationError
from bnpl_ledger.domain.models import (
    FinancingPolicy,
    InterestType,
    PricedLine,
    PricingQuote,
    PurchaseType,
)
from bnpl_ledger.utils.date_utils import add_days, days_overdue, today
from bnpl_ledger.utils.money import percent_of, round_cents

WEEKS_PER_MONTH = 4
DAYS_PER_WEEK = 7


def calculate_subtotal(lines: List[PricedLine]) -> int:
    """Sum of unit price x quantity over all lines"""
    return sum(line.unit_price_cents * line.quantity for line in lines)


def installments_for_tenor(tenor_days: int) -> int:
    """Weekly installment count covering a tenor given in days"""
    return max(1, math.ceil(tenor_days / DAYS_PER_WEEK))


def months_for_installments(installments: int) -> int:
    """
    Canonical tenor-to-months mapping for MONTHLY interest.

    Installments are weekly, four to a month: months = ceil(installments / 4).
    Tenors given in days are first turned into weekly installments
    (see installments_for_tenor) so both call paths agree.
    """
    return math.ceil(installments / WEEKS_PER_MONTH)


def calculate_interest(
    subtotal_cents: int,
    policy: Optional[FinancingPolicy],
    purchase_type: PurchaseType,
    installments: int,
) -> int:
    """
    Interest charged on a subtotal.

    - CASH: always 0, whatever the policy says
    - FLAT: subtotal x rate/100, one-time, independent of tenor
    - MONTHLY: subtotal x rate/100 x months (simple multiplication, no compounding)
    """
    if purchase_type == PurchaseType.CASH or policy is None:
        return 0

    base = percent_of(subtotal_cents, policy.interest_rate)
    if policy.interest_type == InterestType.FLAT:
        return round_cents(base)

    return round_cents(base * months_for_installments(installments))


def resolve_tenor_days(policy: Optional[FinancingPolicy], requested_days: Optional[int], default_days: int) -> int:
    """Requested tenor capped by the policy; exceeding the cap is a validation error"""
    if requested_days is not None and requested_days < 1:
        raise ValidationError("Tenor must be at least 1 day")

    if policy is None:
        return requested_days or default_days

    if requested_days is None:
        return policy.max_tenor_days

    if requested_days > policy.max_tenor_days:
        raise ValidationError(f"Tenor cannot exceed {policy.max_tenor_days} days")

    return requested_days


def price_purchase(
    lines: List[PricedLine],
    policy: Optional[FinancingPolicy],
    purchase_type: PurchaseType,
    installments: Optional[int] = None,
    tenor_days: Optional[int] = None,
    start_date: date | None = None,
    default_tenor_days: int = 60,
) -> PricingQuote:
    """
    Turn a cart and a financing policy into subtotal, interest, total and due date.

    Args:
        lines: Unit price / quantity pairs
        policy: Effective policy, None only for CASH sales
        purchase_type: CASH, LAYAWAY or CREDIT
        installments: Weekly installment count; derived from the tenor when omitted
        tenor_days: Requested repayment period, capped by policy.max_tenor_days
        start_date: Sale date (default: today)

    Raises:
        ValidationError: Empty cart, bad quantities, tenor beyond policy, or a
            financed sale without a policy
    """
    if not lines:
        raise ValidationError("At least one item is required")

    for line in lines:
        if line.quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        if line.unit_price_cents < 0:
            raise ValidationError("Unit price cannot be negative")

    if policy is None and purchase_type != PurchaseType.CASH:
        raise ValidationError("Financing policy not configured for this shop")

    if installments is not None and installments < 1:
        raise ValidationError("Installments must be at least 1")

    start = start_date or today()
    subtotal = calculate_subtotal(lines)

    # Settled on the spot
    if purchase_type == PurchaseType.CASH:
        return PricingQuote(
            subtotal_cents=subtotal,
            interest_cents=0,
            total_cents=subtotal,
            tenor_days=0,
            due_date=start,
        )

    tenor = resolve_tenor_days(policy, tenor_days, default_tenor_days)
    count = installments if installments is not None else installments_for_tenor(tenor)
    interest = calculate_interest(subtotal, policy, purchase_type, count)

    return PricingQuote(
        subtotal_cents=subtotal,
        interest_cents=interest,
        total_cents=subtotal + interest,
        tenor_days=tenor,
        due_date=add_days(start, tenor),
        interest_type=policy.interest_type,
        interest_rate=policy.interest_rate,
    )


def validate_tier_prices(cash_price_cents: int, layaway_price_cents: int, credit_price_cents: int) -> None:
    """Product prices must satisfy cash <= layaway <= credit"""
    if min(cash_price_cents, layaway_price_cents, credit_price_cents) < 0:
        raise ValidationError("Prices cannot be negative")
    if not cash_price_cents <= layaway_price_cents <= credit_price_cents:
        raise ValidationError("Prices must satisfy cash <= layaway <= credit")


def calculate_late_fee(
    outstanding_cents: int,
    due_date: Optional[date],
    policy: Optional[FinancingPolicy],
    as_of: date | None = None,
) -> int:
    """
    Late fee accrued on an overdue balance once the grace period has elapsed.

    fee = late_fee_fixed + outstanding x late_fee_rate/100
    """
    if policy is None or outstanding_cents <= 0:
        return 0

    overdue = days_overdue(due_date, as_of or today())
    if overdue <= policy.grace_days:
        return 0

    fee = Decimal(policy.late_fee_fixed_cents or 0)
    if policy.late_fee_rate:
        fee += percent_of(outstanding_cents, policy.late_fee_rate)
    return round_cents(fee)

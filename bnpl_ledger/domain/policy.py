"""Financing policy resolution and validation"""

from decimal import Decimal
from typing import Optional

from bnpl_ledger.domain.exceptions import ValidationError
from bnpl_ledger.domain.models import FinancingPolicy, PurchaseType


def resolve_policy(
    shop_policy: Optional[FinancingPolicy],
    business_policy: Optional[FinancingPolicy],
) -> Optional[FinancingPolicy]:
    """Shop policy wins; the parent business policy is the fallback"""
    if shop_policy is not None:
        return shop_policy
    return business_policy


def require_policy(policy: Optional[FinancingPolicy], purchase_type: PurchaseType) -> Optional[FinancingPolicy]:
    """Only CASH sales may proceed without an effective policy"""
    if policy is None and purchase_type != PurchaseType.CASH:
        raise ValidationError("Shop policy not configured. Please contact your administrator.")
    return policy


def validate_policy(policy: FinancingPolicy) -> None:
    """Range checks applied before a policy is written"""
    if not Decimal("0") <= policy.interest_rate <= Decimal("100"):
        raise ValidationError("Interest rate must be between 0 and 100")

    if not 0 <= policy.grace_days <= 60:
        raise ValidationError("Grace days must be between 0 and 60")

    if not 1 <= policy.max_tenor_days <= 365:
        raise ValidationError("Max tenor days must be between 1 and 365")

    if policy.late_fee_fixed_cents is not None and policy.late_fee_fixed_cents < 0:
        raise ValidationError("Late fee fixed amount must be 0 or greater")

    if policy.late_fee_rate is not None and policy.late_fee_rate < 0:
        raise ValidationError("Late fee rate must be 0 or greater")

"""Financing policy endpoints - shop policy with business fallback"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bnpl_ledger.api.dependencies import get_shop_context
from bnpl_ledger.api.v1.schemas import EffectivePolicyResponse, PolicySchema
from bnpl_ledger.domain.models import FinancingPolicy
from bnpl_ledger.infrastructure.database.session import get_db
from bnpl_ledger.services.catalog import effective_policy, save_business_policy, save_shop_policy
from bnpl_ledger.services.identity import ShopContext

router = APIRouter()


def _to_domain(body: PolicySchema) -> FinancingPolicy:
    return FinancingPolicy(
        interest_type=body.interest_type,
        interest_rate=body.interest_rate,
        grace_days=body.grace_days,
        max_tenor_days=body.max_tenor_days,
        late_fee_fixed_cents=body.late_fee_fixed_cents,
        late_fee_rate=body.late_fee_rate,
    )


def _to_schema(policy: FinancingPolicy) -> PolicySchema:
    return PolicySchema(
        interest_type=policy.interest_type,
        interest_rate=policy.interest_rate,
        grace_days=policy.grace_days,
        max_tenor_days=policy.max_tenor_days,
        late_fee_fixed_cents=policy.late_fee_fixed_cents,
        late_fee_rate=policy.late_fee_rate,
    )


@router.get("/shops/{shop_id}/policy", response_model=EffectivePolicyResponse)
def get_effective_policy(ctx: ShopContext = Depends(get_shop_context), db: Session = Depends(get_db)):
    """Policy applied to new sales: the shop's own, else its business's"""
    policy = effective_policy(db, ctx)
    if policy is None:
        return EffectivePolicyResponse(configured=False)
    return EffectivePolicyResponse(configured=True, policy=_to_schema(policy))


@router.put("/shops/{shop_id}/policy", response_model=PolicySchema)
def put_shop_policy(
    body: PolicySchema,
    ctx: ShopContext = Depends(get_shop_context),
    db: Session = Depends(get_db),
):
    return _to_schema(save_shop_policy(db, ctx, _to_domain(body)))


@router.put("/shops/{shop_id}/business-policy", response_model=PolicySchema)
def put_business_policy(
    body: PolicySchema,
    ctx: ShopContext = Depends(get_shop_context),
    db: Session = Depends(get_db),
):
    """Fallback policy for every shop of the business without its own"""
    return _to_schema(save_business_policy(db, ctx, _to_domain(body)))

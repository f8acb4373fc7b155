"""Financing policies, tiered product prices and shop stock"""

import uuid
from typing import Optional
from sqlalchemy.orm import Session

from bnpl_ledger.domain.exceptions import AuthorizationError, NotFoundError, ValidationError
from bnpl_ledger.domain.models import FinancingPolicy, StaffRole
from bnpl_ledger.domain.policy import validate_policy
from bnpl_ledger.domain.pricing import validate_tier_prices
from bnpl_ledger.infrastructure.database.models import Product, ShopProduct
from bnpl_ledger.infrastructure.database.repositories import PolicyRepository, ProductRepository
from bnpl_ledger.infrastructure.database.session import transaction
from bnpl_ledger.services.identity import ShopContext, require_supervisor


def save_shop_policy(db: Session, ctx: ShopContext, policy: FinancingPolicy) -> FinancingPolicy:
    """Create or replace the shop's own policy"""
    require_supervisor(ctx)
    validate_policy(policy)
    with transaction(db):
        PolicyRepository(db).upsert(policy, shop_id=ctx.shop_id)
    return policy


def save_business_policy(db: Session, ctx: ShopContext, policy: FinancingPolicy) -> FinancingPolicy:
    """Create or replace the business fallback policy; business admins only"""
    if ctx.role != StaffRole.BUSINESS_ADMIN:
        raise AuthorizationError("Only business admins can change the business policy")
    validate_policy(policy)
    with transaction(db):
        PolicyRepository(db).upsert(policy, business_id=ctx.business_id)
    return policy


def effective_policy(db: Session, ctx: ShopContext) -> Optional[FinancingPolicy]:
    """Shop policy, else business policy, else None"""
    return PolicyRepository(db).resolve_for_shop(ctx.shop)


def save_product(
    db: Session,
    ctx: ShopContext,
    name: str,
    cash_price_cents: int,
    layaway_price_cents: int,
    credit_price_cents: int,
    stock_quantity: int = 0,
    sku: str | None = None,
    product_id: uuid.UUID | None = None,
) -> Product:
    """
    Create a product, or update one of the caller's business.

    Raises:
        ValidationError: Tier prices out of order, negative stock, blank name
        NotFoundError: product_id not in the caller's business
    """
    require_supervisor(ctx)
    if not name or not name.strip():
        raise ValidationError("Product name is required")
    if stock_quantity < 0:
        raise ValidationError("Stock cannot be negative")
    validate_tier_prices(cash_price_cents, layaway_price_cents, credit_price_cents)

    with transaction(db):
        if product_id is None:
            product = Product(business_id=ctx.business_id)
            db.add(product)
        else:
            product = ProductRepository(db).get_in_business(product_id, ctx.business_id)
            if product is None:
                raise NotFoundError("Product not found")

        product.name = name.strip()
        product.sku = sku
        product.cash_price_cents = cash_price_cents
        product.layaway_price_cents = layaway_price_cents
        product.credit_price_cents = credit_price_cents
        product.stock_quantity = stock_quantity
        db.flush()

    return product


def set_shop_stock(db: Session, ctx: ShopContext, product_id: uuid.UUID, quantity: int) -> ShopProduct:
    """Shop-scoped stock; once set it takes precedence over the product's global stock"""
    require_supervisor(ctx)
    if quantity < 0:
        raise ValidationError("Stock cannot be negative")

    with transaction(db):
        products = ProductRepository(db)
        if products.get_in_business(product_id, ctx.business_id) is None:
            raise NotFoundError("Product not found")
        shop_stock = products.set_shop_stock(ctx.shop_id, product_id, quantity)

    return shop_stock

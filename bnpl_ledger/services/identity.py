"""Identity/permission resolution for shop-scoped operations"""

import uuid
from dataclasses import dataclass
from typing import Optional
from sqlalchemy import or_
from sqlalchemy.orm import Session

from bnpl_ledger.domain.exceptions import AuthorizationError
from bnpl_ledger.domain.models import StaffRole
from bnpl_ledger.infrastructure.database.models import Shop, StaffMembership

SUPERVISOR_ROLES = (StaffRole.SHOP_ADMIN, StaffRole.BUSINESS_ADMIN)
BUSINESS_ROLES = (StaffRole.BUSINESS_ADMIN, StaffRole.ACCOUNTANT)
DELIVERY_ROLES = (StaffRole.SHOP_ADMIN, StaffRole.BUSINESS_ADMIN, StaffRole.SALES_STAFF)


@dataclass
class ShopContext:
    """Acting actor, the shop acted on, and the membership that grants access"""

    actor_id: str
    shop: Shop
    membership: StaffMembership

    @property
    def shop_id(self) -> uuid.UUID:
        return self.shop.id

    @property
    def business_id(self) -> uuid.UUID:
        return self.shop.business_id

    @property
    def role(self) -> StaffRole:
        return StaffRole(self.membership.role)

    @property
    def actor_name(self) -> str:
        return self.membership.name

    @property
    def is_supervisor(self) -> bool:
        return self.role in SUPERVISOR_ROLES

    @property
    def is_business_wide(self) -> bool:
        return self.membership.shop_id is None and self.role in BUSINESS_ROLES

    @property
    def can_confirm_payments(self) -> bool:
        return self.is_supervisor or bool(self.membership.can_confirm_payments)

    @property
    def can_load_wallet(self) -> bool:
        return self.is_supervisor or bool(self.membership.can_load_wallet)


def resolve_shop_context(db: Session, shop_id: uuid.UUID, actor_id: Optional[str]) -> ShopContext:
    """
    Resolve who is acting on which shop.

    Access is granted by an active membership on the shop itself, or by a
    business-level membership (shop_id null) on the shop's business.

    Raises:
        AuthorizationError: Missing actor, unknown/inactive shop, or no membership
    """
    if not actor_id:
        raise AuthorizationError("Missing actor identity")

    shop = db.query(Shop).filter(Shop.id == shop_id, Shop.is_active.is_(True)).first()
    if shop is None:
        raise AuthorizationError("Shop not accessible")

    membership = (
        db.query(StaffMembership)
        .filter(
            StaffMembership.actor_id == actor_id,
            StaffMembership.is_active.is_(True),
            StaffMembership.business_id == shop.business_id,
            or_(StaffMembership.shop_id == shop.id, StaffMembership.shop_id.is_(None)),
        )
        .order_by(StaffMembership.shop_id.is_(None))
        .first()
    )
    if membership is None:
        raise AuthorizationError("Actor has no access to this shop")

    return ShopContext(actor_id=actor_id, shop=shop, membership=membership)


def require_supervisor(ctx: ShopContext) -> None:
    if not ctx.is_supervisor:
        raise AuthorizationError("Only shop or business admins can perform this action")


def require_payment_confirmer(ctx: ShopContext) -> None:
    if not ctx.can_confirm_payments:
        raise AuthorizationError("You do not have permission to confirm payments")


def require_wallet_loader(ctx: ShopContext) -> None:
    if not ctx.can_load_wallet:
        raise AuthorizationError("You don't have permission to load customer wallets")


def require_delivery_staff(ctx: ShopContext) -> None:
    if ctx.role not in DELIVERY_ROLES:
        raise AuthorizationError("Only sales staff or admins can update deliveries")


def staff_name(db: Session, business_id: uuid.UUID, actor_id: Optional[str]) -> Optional[str]:
    """Display name of a staff member, used on customer-facing documents"""
    if not actor_id:
        return None
    membership = (
        db.query(StaffMembership)
        .filter(StaffMembership.actor_id == actor_id, StaffMembership.business_id == business_id)
        .first()
    )
    return membership.name if membership else None

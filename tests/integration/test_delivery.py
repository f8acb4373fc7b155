"""Integration tests for delivery tracking after fulfillment"""

import uuid
import pytest
from bnpl_ledger.domain.exceptions import AuthorizationError, ConflictError, NotFoundError
from bnpl_ledger.domain.models import CartLine, DeliveryStatus, NewPurchase, PaymentMethod, PurchaseType, StaffRole
from bnpl_ledger.infrastructure.database.models import Purchase, StaffMembership
from bnpl_ledger.services.fulfillment import list_ready_for_delivery, update_delivery_status
from bnpl_ledger.services.identity import resolve_shop_context
from bnpl_ledger.services.payments import record_payment
from bnpl_ledger.services.purchases import create_purchase

SALES = "sales-1"


@pytest.fixture
def sales_ctx(db, shop):
    db.add(
        StaffMembership(
            actor_id=SALES,
            business_id=shop.business_id,
            shop_id=shop.id,
            name="Esi Sales",
            role=StaffRole.SALES_STAFF.value,
        )
    )
    db.commit()
    return resolve_shop_context(db, shop.id, SALES)


def credit_sale(db, ctx, customer, product) -> Purchase:
    return create_purchase(
        db,
        ctx,
        NewPurchase(
            customer_id=customer.id,
            purchase_type=PurchaseType.CREDIT,
            lines=[CartLine(product_id=product.id, quantity=1)],
        ),
    ).purchase


@pytest.fixture
def paid_purchase(db, admin_ctx, flat_policy, customer, product) -> Purchase:
    """Fully paid CREDIT sale with its waybill, delivery SCHEDULED"""
    purchase = credit_sale(db, admin_ctx, customer, product)
    record_payment(db, admin_ctx, purchase.id, purchase.outstanding_cents, PaymentMethod.CASH, auto_confirm=True)
    db.expire_all()
    purchase = db.get(Purchase, purchase.id)
    assert purchase.delivery_status == DeliveryStatus.SCHEDULED.value
    return purchase


def test_delivery_moves_forward(db, sales_ctx, paid_purchase):
    purchase = update_delivery_status(db, sales_ctx, paid_purchase.id, DeliveryStatus.IN_TRANSIT)
    assert purchase.delivery_status == "IN_TRANSIT"
    assert purchase.delivered_at is None

    update_delivery_status(db, sales_ctx, paid_purchase.id, DeliveryStatus.DELIVERED)

    db.expire_all()
    purchase = db.get(Purchase, paid_purchase.id)
    assert purchase.delivery_status == "DELIVERED"
    assert purchase.delivered_at is not None
    assert purchase.delivered_by == SALES


def test_delivery_may_skip_steps(db, admin_ctx, paid_purchase):
    purchase = update_delivery_status(db, admin_ctx, paid_purchase.id, DeliveryStatus.DELIVERED)
    assert purchase.delivered_by == admin_ctx.actor_id


@pytest.mark.parametrize("status", [DeliveryStatus.PENDING, DeliveryStatus.SCHEDULED])
def test_delivery_cannot_move_backwards(db, sales_ctx, paid_purchase, status):
    with pytest.raises(ConflictError):
        update_delivery_status(db, sales_ctx, paid_purchase.id, status)

    db.expire_all()
    assert db.get(Purchase, paid_purchase.id).delivery_status == "SCHEDULED"


def test_delivered_is_final(db, sales_ctx, paid_purchase):
    update_delivery_status(db, sales_ctx, paid_purchase.id, DeliveryStatus.DELIVERED)

    with pytest.raises(ConflictError):
        update_delivery_status(db, sales_ctx, paid_purchase.id, DeliveryStatus.IN_TRANSIT)


def test_open_purchase_cannot_be_delivered(db, admin_ctx, sales_ctx, flat_policy, customer, product):
    purchase = credit_sale(db, admin_ctx, customer, product)

    with pytest.raises(ConflictError):
        update_delivery_status(db, sales_ctx, purchase.id, DeliveryStatus.IN_TRANSIT)

    db.expire_all()
    assert db.get(Purchase, purchase.id).delivery_status == "PENDING"


def test_cash_sale_has_no_waybill_to_deliver(db, admin_ctx, sales_ctx, customer, product):
    """Cash sales are handed over at the counter"""
    purchase = create_purchase(
        db,
        admin_ctx,
        NewPurchase(
            customer_id=customer.id,
            purchase_type=PurchaseType.CASH,
            lines=[CartLine(product_id=product.id, quantity=1)],
        ),
    ).purchase

    with pytest.raises(ConflictError):
        update_delivery_status(db, sales_ctx, purchase.id, DeliveryStatus.DELIVERED)


def test_collector_cannot_update_delivery(db, collector_ctx, paid_purchase):
    with pytest.raises(AuthorizationError):
        update_delivery_status(db, collector_ctx, paid_purchase.id, DeliveryStatus.IN_TRANSIT)


def test_unknown_purchase_is_not_found(db, sales_ctx):
    with pytest.raises(NotFoundError):
        update_delivery_status(db, sales_ctx, uuid.uuid4(), DeliveryStatus.IN_TRANSIT)


def test_ready_for_delivery_listing(db, admin_ctx, sales_ctx, paid_purchase, customer, product):
    credit_sale(db, admin_ctx, customer, product)

    assert [p.id for p in list_ready_for_delivery(db, sales_ctx)] == [paid_purchase.id]

    update_delivery_status(db, sales_ctx, paid_purchase.id, DeliveryStatus.IN_TRANSIT)
    assert [p.id for p in list_ready_for_delivery(db, sales_ctx)] == [paid_purchase.id]

    update_delivery_status(db, sales_ctx, paid_purchase.id, DeliveryStatus.DELIVERED)
    assert list_ready_for_delivery(db, sales_ctx) == []

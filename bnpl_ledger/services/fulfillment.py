"""Fulfillment trigger - stock deduction and waybill generation for completed purchases"""

import logging
import uuid
from typing import List, Optional
from sqlalchemy.orm import Session

from bnpl_ledger.domain.exceptions import ConflictError, IntegrityFault, NotFoundError
from bnpl_ledger.domain.lifecycle import ensure_delivery_advance
from bnpl_ledger.domain.models import DeliveryStatus, PurchaseStatus, PurchaseType
from bnpl_ledger.infrastructure.database.models import Purchase, Waybill
from bnpl_ledger.infrastructure.database.repositories import (
    ProductRepository,
    PurchaseRepository,
    SequenceRepository,
    WaybillRepository,
)
from bnpl_ledger.infrastructure.database.session import transaction
from bnpl_ledger.infrastructure.observability.logging import log_integrity_fault
from bnpl_ledger.infrastructure.observability.metrics import integrity_fault_counter, waybill_counter
from bnpl_ledger.services.identity import ShopContext, require_delivery_staff
from bnpl_ledger.utils.date_utils import today, utcnow


def next_waybill_number(db: Session) -> str:
    """WB-{year}-{seq:05d}, sequence restarting each year"""
    year = today().year
    seq = SequenceRepository(db).next_value(f"waybill:{year}")
    return f"WB-{year}-{seq:05d}"


def fulfill_completed_purchase(db: Session, purchase: Purchase, actor_id: str | None = None) -> Optional[Waybill]:
    """
    Run exactly once per purchase when it reaches COMPLETED.

    Called inside the transaction that completed the purchase. A purchase
    that already has a waybill is left untouched and its waybill returned,
    so stock is never deducted twice.

    Returns:
        The waybill for LAYAWAY/CREDIT purchases, None for CASH sales

    Raises:
        IntegrityFault: A stock row would go negative; the caller's transaction
            must roll back
    """
    waybills = WaybillRepository(db)
    existing = waybills.get_by_purchase(purchase.id)
    if existing is not None:
        return existing

    products = ProductRepository(db)
    for item in purchase.items:
        if item.product_id is None:
            continue
        if not products.decrement_stock(purchase.shop_id, item.product_id, item.quantity):
            integrity_fault_counter.labels(kind="stock").inc()
            log_integrity_fault(
                "stock",
                f"insufficient stock for {item.product_name}",
                purchase_id=str(purchase.id),
                product_id=str(item.product_id),
                quantity=item.quantity,
            )
            raise IntegrityFault(f"Insufficient stock for {item.product_name}")

    if purchase.purchase_type == PurchaseType.CASH.value:
        purchase.delivery_status = DeliveryStatus.DELIVERED.value
        db.flush()
        return None

    customer = purchase.customer
    waybill = waybills.add(
        Waybill(
            waybill_number=next_waybill_number(db),
            purchase_id=purchase.id,
            recipient_name=customer.full_name,
            recipient_phone=customer.phone,
            delivery_address=customer.address or "",
            delivery_city=customer.city,
            delivery_region=customer.region,
            special_instructions=purchase.notes,
            generated_by=actor_id,
        )
    )
    purchase.delivery_status = DeliveryStatus.SCHEDULED.value
    db.flush()

    waybill_counter.inc()
    logging.info(
        "Waybill generated",
        extra={
            "step": "waybill_generated",
            "purchase_id": str(purchase.id),
            "waybill_number": waybill.waybill_number,
        },
    )
    return waybill


def update_delivery_status(db: Session, ctx: ShopContext, purchase_id: uuid.UUID, status: DeliveryStatus) -> Purchase:
    """
    Move a waybilled purchase along PENDING -> SCHEDULED -> IN_TRANSIT -> DELIVERED.

    Steps may be skipped but never reversed. Reaching DELIVERED stamps who
    handed the goods over and when.

    Raises:
        AuthorizationError: Caller is not sales staff or an admin
        NotFoundError: Purchase is not in this shop
        ConflictError: Purchase is not fully paid, has no waybill, or the move is backwards
    """
    require_delivery_staff(ctx)
    target = DeliveryStatus(status)

    with transaction(db):
        purchase = PurchaseRepository(db).get_in_shop(purchase_id, ctx.shop_id, for_update=True)
        if purchase is None:
            raise NotFoundError("Purchase not found")
        if purchase.status != PurchaseStatus.COMPLETED.value:
            raise ConflictError("Only completed purchases can be delivered")
        if WaybillRepository(db).get_by_purchase(purchase.id) is None:
            raise ConflictError("Purchase has no waybill")

        ensure_delivery_advance(DeliveryStatus(purchase.delivery_status), target)
        purchase.delivery_status = target.value
        if target == DeliveryStatus.DELIVERED:
            purchase.delivered_at = utcnow()
            purchase.delivered_by = ctx.actor_id
        db.flush()

    logging.info(
        "Delivery status updated",
        extra={
            "step": "delivery_status",
            "purchase_id": str(purchase.id),
            "delivery_status": target.value,
            "actor_id": ctx.actor_id,
        },
    )
    return purchase


def list_ready_for_delivery(db: Session, ctx: ShopContext) -> List[Purchase]:
    require_delivery_staff(ctx)
    return PurchaseRepository(db).ready_for_delivery(ctx.shop_id)

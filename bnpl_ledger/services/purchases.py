"""Purchase state machine - creation, item updates and read models"""

import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from sqlalchemy.orm import Session

from bnpl_ledger.config import settings
from bnpl_ledger.domain.exceptions import ConflictError, NotFoundError, ValidationError
from bnpl_ledger.domain.installments import generate_installment_plan
from bnpl_ledger.domain.lifecycle import OPEN_STATUSES, effective_status, outstanding_after, status_for_balance
from bnpl_ledger.domain.models import (
    CartLine,
    DeliveryStatus,
    Installment,
    NewPurchase,
    PaymentMethod,
    PricedLine,
    PurchaseStatus,
    PurchaseType,
)
from bnpl_ledger.domain.policy import require_policy
from bnpl_ledger.domain.pricing import installments_for_tenor, price_purchase
from bnpl_ledger.infrastructure.database.models import Payment, Product, Purchase, PurchaseItem, Waybill
from bnpl_ledger.infrastructure.database.repositories import (
    PaymentRepository,
    PolicyRepository,
    ProductRepository,
    PurchaseRepository,
    SequenceRepository,
)
from bnpl_ledger.infrastructure.database.session import transaction
from bnpl_ledger.infrastructure.observability.logging import log_purchase_created
from bnpl_ledger.infrastructure.observability.metrics import record_payment_event, record_purchase
from bnpl_ledger.services.fulfillment import fulfill_completed_purchase
from bnpl_ledger.services.identity import ShopContext
from bnpl_ledger.services.wallet import WalletLedger, get_customer
from bnpl_ledger.utils.date_utils import today, utcnow


@dataclass
class PurchaseOutcome:
    purchase: Purchase
    waybill: Optional[Waybill] = None
    payments: List[Payment] = field(default_factory=list)


def unit_price_for(product: Product, purchase_type: PurchaseType) -> int:
    """Tier price charged for a product under a purchase type"""
    if purchase_type == PurchaseType.CASH:
        return product.cash_price_cents
    if purchase_type == PurchaseType.LAYAWAY:
        return product.layaway_price_cents
    return product.credit_price_cents


def _installment_count(purchase_type: PurchaseType, requested: Optional[int], tenor_days: int) -> int:
    if purchase_type == PurchaseType.CASH:
        return 1
    return requested or installments_for_tenor(tenor_days)


def next_purchase_number(db: Session, customer_id: uuid.UUID) -> str:
    """HP-0001, HP-0002, ... per customer"""
    seq = SequenceRepository(db).next_value(f"purchase:{customer_id}")
    return f"HP-{seq:04d}"


def _load_cart(
    db: Session,
    ctx: ShopContext,
    lines: List[CartLine],
    purchase_type: PurchaseType,
) -> List[Tuple[Product, int, int]]:
    """
    Resolve cart lines to (product, quantity, unit price) within the caller's business.

    Stock is checked per product against the shop's stock row, falling back to
    global stock, with repeated lines for the same product summed.

    Raises:
        ValidationError: Empty cart or a quantity below 1
        NotFoundError: Unknown or inactive product
        ConflictError: Requested quantity exceeds available stock
    """
    if not lines:
        raise ValidationError("At least one item is required")

    products = ProductRepository(db)
    resolved: List[Tuple[Product, int, int]] = []
    requested: Dict[uuid.UUID, int] = defaultdict(int)

    for line in lines:
        if line.quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        product = products.get_in_business(line.product_id, ctx.business_id)
        if product is None:
            raise NotFoundError(f"Product {line.product_id} not found")
        requested[product.id] += line.quantity
        resolved.append((product, line.quantity, unit_price_for(product, purchase_type)))

    for product, _, _ in resolved:
        available = products.available_stock(ctx.shop_id, product)
        if requested[product.id] > available:
            raise ConflictError(
                f"Insufficient stock for {product.name}. Available: {available}, requested: {requested[product.id]}"
            )

    return resolved


def _build_items(cart: List[Tuple[Product, int, int]]) -> List[PurchaseItem]:
    return [
        PurchaseItem(
            product_id=product.id,
            position=position,
            product_name=product.name,
            quantity=quantity,
            unit_price_cents=unit_price,
            line_total_cents=unit_price * quantity,
        )
        for position, (product, quantity, unit_price) in enumerate(cart)
    ]


def create_purchase(db: Session, ctx: ShopContext, new: NewPurchase) -> PurchaseOutcome:
    """
    Price and persist a sale in one transaction.

    CASH sales settle on the spot: a confirmed CASH payment for the full
    total, stock deducted, status COMPLETED and delivery DELIVERED.

    LAYAWAY/CREDIT: the down payment is cash tendered plus wallet funds
    applied. Cash tendered is kept as a confirmed CASH payment, wallet funds
    as a confirmed WALLET payment debited from the wallet. The remaining
    outstanding balance is posted to the wallet as debt immediately. A sale
    fully covered by its down payment completes and is fulfilled at once.

    Raises:
        ValidationError: Bad cart, tenor beyond policy, missing policy, bad down payment
        NotFoundError: Customer or product outside the caller's scope
        ConflictError: Insufficient stock or wallet balance
        IntegrityFault: Stock underflow during fulfillment
    """
    purchase_type = PurchaseType(new.purchase_type)
    if new.down_payment_cents < 0 or new.wallet_amount_cents < 0:
        raise ValidationError("Down payment cannot be negative")
    if purchase_type == PurchaseType.CASH and new.wallet_amount_cents:
        raise ValidationError("Wallet funds can only be applied to LAYAWAY or CREDIT purchases")

    with transaction(db):
        customer = get_customer(db, new.customer_id, ctx.shop_id)
        if not customer.is_active:
            raise ValidationError("Customer is inactive")

        cart = _load_cart(db, ctx, new.lines, purchase_type)
        policy = require_policy(PolicyRepository(db).resolve_for_shop(ctx.shop), purchase_type)
        start = today()
        quote = price_purchase(
            [PricedLine(unit_price_cents=unit_price, quantity=quantity) for _, quantity, unit_price in cart],
            policy,
            purchase_type,
            installments=new.installments,
            tenor_days=new.tenor_days,
            start_date=start,
            default_tenor_days=settings.default_tenor_days,
        )

        if purchase_type == PurchaseType.CASH:
            down_payment = quote.total_cents
        else:
            down_payment = new.down_payment_cents + new.wallet_amount_cents
            if down_payment > quote.total_cents:
                raise ValidationError("Down payment cannot exceed the purchase total")

        outstanding = outstanding_after(quote.total_cents, down_payment)
        purchase = PurchaseRepository(db).add(
            Purchase(
                purchase_number=next_purchase_number(db, customer.id),
                customer_id=customer.id,
                shop_id=ctx.shop_id,
                purchase_type=purchase_type.value,
                status=status_for_balance(PurchaseStatus.PENDING, outstanding, down_payment).value,
                subtotal_cents=quote.subtotal_cents,
                interest_cents=quote.interest_cents,
                total_cents=quote.total_cents,
                amount_paid_cents=down_payment,
                outstanding_cents=outstanding,
                down_payment_cents=down_payment,
                installments=_installment_count(purchase_type, new.installments, quote.tenor_days),
                tenor_days=quote.tenor_days,
                interest_type=quote.interest_type.value if quote.interest_type else None,
                interest_rate=quote.interest_rate,
                start_date=start,
                due_date=quote.due_date,
                delivery_status=DeliveryStatus.PENDING.value,
                notes=new.notes,
                created_by=ctx.actor_id,
                items=_build_items(cart),
            )
        )

        outcome = PurchaseOutcome(purchase=purchase)
        wallet = WalletLedger(db)
        payments = PaymentRepository(db)

        cash_tendered = quote.total_cents if purchase_type == PurchaseType.CASH else new.down_payment_cents
        if cash_tendered > 0:
            outcome.payments.append(
                payments.add(_settled_payment(purchase, cash_tendered, PaymentMethod.CASH, ctx.actor_id, "Down payment"))
            )

        if new.wallet_amount_cents > 0:
            payment = payments.add(
                _settled_payment(purchase, new.wallet_amount_cents, PaymentMethod.WALLET, ctx.actor_id, "Wallet applied")
            )
            wallet.apply_wallet_to_purchase(
                customer.id,
                ctx.shop_id,
                new.wallet_amount_cents,
                purchase_id=purchase.id,
                payment_id=payment.id,
                actor_id=ctx.actor_id,
            )
            outcome.payments.append(payment)

        if purchase_type != PurchaseType.CASH and outstanding > 0:
            wallet.debit_for_debt(
                customer.id,
                ctx.shop_id,
                outstanding,
                purchase_id=purchase.id,
                reference=purchase.purchase_number,
                actor_id=ctx.actor_id,
            )

        if purchase.status == PurchaseStatus.COMPLETED.value:
            outcome.waybill = fulfill_completed_purchase(db, purchase, ctx.actor_id)

    record_purchase(purchase.purchase_type, purchase.total_cents)
    for payment in outcome.payments:
        record_payment_event("confirmed", payment.payment_method)
    log_purchase_created(
        ctx.actor_id,
        str(ctx.shop_id),
        str(purchase.id),
        purchase.purchase_number,
        purchase.purchase_type,
        purchase.total_cents,
        purchase.outstanding_cents,
    )
    return outcome


def _settled_payment(
    purchase: Purchase,
    amount_cents: int,
    method: PaymentMethod,
    actor_id: str,
    notes: str,
) -> Payment:
    now = utcnow()
    return Payment(
        purchase_id=purchase.id,
        amount_cents=amount_cents,
        payment_method=method.value,
        is_confirmed=True,
        confirmed_at=now,
        confirmed_by=actor_id,
        recorded_by=actor_id,
        notes=notes,
        paid_at=now,
    )


def update_purchase_items(db: Session, ctx: ShopContext, purchase_id: uuid.UUID, lines: List[CartLine]) -> PurchaseOutcome:
    """
    Replace the items of an open purchase and re-price it with the current policy.

    The outstanding balance is recomputed against what has already been paid
    and the posted wallet debt moves by the same difference. A purchase whose
    balance drops to zero completes and is fulfilled.

    Raises:
        NotFoundError: Purchase outside the caller's shop
        ConflictError: Purchase already completed, insufficient stock, or a new
            total below the amount already paid
    """
    with transaction(db):
        purchase = PurchaseRepository(db).get_in_shop(purchase_id, ctx.shop_id, for_update=True)
        if purchase is None:
            raise NotFoundError("Purchase not found")
        if PurchaseStatus(purchase.status) not in OPEN_STATUSES:
            raise ConflictError("Cannot update items of a completed purchase")

        purchase_type = PurchaseType(purchase.purchase_type)
        cart = _load_cart(db, ctx, lines, purchase_type)
        policy = require_policy(PolicyRepository(db).resolve_for_shop(ctx.shop), purchase_type)
        quote = price_purchase(
            [PricedLine(unit_price_cents=unit_price, quantity=quantity) for _, quantity, unit_price in cart],
            policy,
            purchase_type,
            installments=purchase.installments,
            tenor_days=purchase.tenor_days or None,
            start_date=purchase.start_date,
            default_tenor_days=settings.default_tenor_days,
        )
        if quote.total_cents < purchase.amount_paid_cents:
            raise ConflictError(
                f"New total {quote.total_cents} is below the amount already paid ({purchase.amount_paid_cents})"
            )

        previous_outstanding = purchase.outstanding_cents
        outstanding = outstanding_after(quote.total_cents, purchase.amount_paid_cents)

        purchase.items.clear()
        db.flush()
        purchase.items.extend(_build_items(cart))
        purchase.subtotal_cents = quote.subtotal_cents
        purchase.interest_cents = quote.interest_cents
        purchase.total_cents = quote.total_cents
        purchase.outstanding_cents = outstanding
        purchase.interest_type = quote.interest_type.value if quote.interest_type else None
        purchase.interest_rate = quote.interest_rate
        purchase.due_date = quote.due_date
        purchase.status = status_for_balance(
            PurchaseStatus(purchase.status), outstanding, purchase.amount_paid_cents
        ).value
        db.flush()

        delta = previous_outstanding - outstanding
        if delta != 0:
            WalletLedger(db).adjust(
                purchase.customer_id,
                ctx.shop_id,
                delta,
                f"Items updated on {purchase.purchase_number}",
                purchase_id=purchase.id,
                actor_id=ctx.actor_id,
            )

        outcome = PurchaseOutcome(purchase=purchase)
        if purchase.status == PurchaseStatus.COMPLETED.value:
            outcome.waybill = fulfill_completed_purchase(db, purchase, ctx.actor_id)

    return outcome


def get_purchase(db: Session, ctx: ShopContext, purchase_id: uuid.UUID) -> Purchase:
    purchase = PurchaseRepository(db).get_in_shop(purchase_id, ctx.shop_id)
    if purchase is None:
        raise NotFoundError("Purchase not found")
    return purchase


def list_purchases(
    db: Session,
    ctx: ShopContext,
    customer_id: uuid.UUID | None = None,
    limit: int = 100,
) -> List[Purchase]:
    return PurchaseRepository(db).list_for_shop(ctx.shop_id, customer_id=customer_id, limit=limit)


def reported_status(purchase: Purchase) -> PurchaseStatus:
    """Stored status with OVERDUE derived from the due date"""
    return effective_status(PurchaseStatus(purchase.status), purchase.outstanding_cents, purchase.due_date, today())


def purchase_schedule(db: Session, ctx: ShopContext, purchase_id: uuid.UUID) -> List[Installment]:
    """Remaining balance split over the purchase's installments"""
    purchase = get_purchase(db, ctx, purchase_id)
    if purchase.purchase_type == PurchaseType.CASH.value:
        return []
    interval = max(1, purchase.tenor_days // max(1, purchase.installments))
    return generate_installment_plan(
        purchase.outstanding_cents,
        purchase.installments,
        interval_days=interval,
        start_date=purchase.start_date,
    )

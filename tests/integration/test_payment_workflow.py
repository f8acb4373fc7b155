"""Integration tests for the record / confirm / reject payment workflow"""

import httpx
import pytest
from sqlalchemy.orm import Session
from bnpl_ledger.domain.exceptions import AuthorizationError, ConflictError, IntegrityFault, ValidationError
from bnpl_ledger.domain.models import (
    CartLine,
    DeliveryStatus,
    NewPurchase,
    PaymentMethod,
    PaymentState,
    PurchaseStatus,
    PurchaseType,
)
from bnpl_ledger.infrastructure.clients.notifier import NotificationClient
from bnpl_ledger.infrastructure.database.models import Customer, Payment, Purchase, ShopProduct, WalletTransaction, Waybill
from bnpl_ledger.infrastructure.documents.renderer import PendingPaymentData, ReceiptData, WaybillData
from bnpl_ledger.services.accounts import deposit_to_wallet
from bnpl_ledger.services.payments import (
    confirm_payment,
    list_pending_payments,
    record_payment,
    reject_payment,
)
from bnpl_ledger.services.notifications import dispatch_notifications
from bnpl_ledger.services.purchases import create_purchase


@pytest.fixture
def credit_purchase(db, admin_ctx, flat_policy, customer, product) -> Purchase:
    """CREDIT sale of 1100.00 with no down payment"""
    outcome = create_purchase(
        db,
        admin_ctx,
        NewPurchase(
            customer_id=customer.id,
            purchase_type=PurchaseType.CREDIT,
            lines=[CartLine(product_id=product.id, quantity=1)],
        ),
    )
    return outcome.purchase


def wallet_balance(db: Session, customer: Customer) -> int:
    db.expire_all()
    return db.get(Customer, customer.id).wallet_balance_cents


def test_record_leaves_balances_untouched(db, collector_ctx, credit_purchase, customer):
    """Scenario C, first half: a recorded payment moves no money"""
    outcome = record_payment(db, collector_ctx, credit_purchase.id, 50000, PaymentMethod.MOBILE_MONEY)

    assert outcome.state == PaymentState.RECORDED
    assert outcome.payment.collector_id == "collector-1"
    assert credit_purchase.amount_paid_cents == 0
    assert credit_purchase.outstanding_cents == 110000
    assert wallet_balance(db, customer) == -110000

    assert len(outcome.notifications) == 1
    assert isinstance(outcome.notifications[0].data, PendingPaymentData)
    assert outcome.notifications[0].data.collector_name == "Kofi Collector"


def test_confirm_applies_payment(db, collector_ctx, admin_ctx, credit_purchase, customer):
    """Scenario C: 500.00 confirmed against 1100.00"""
    recorded = record_payment(db, collector_ctx, credit_purchase.id, 50000, PaymentMethod.CASH)

    outcome = confirm_payment(db, admin_ctx, recorded.payment.id)

    assert outcome.state == PaymentState.CONFIRMED
    assert outcome.payment.confirmed_by == "admin-1"
    assert outcome.payment.confirmed_at is not None
    assert outcome.purchase.amount_paid_cents == 50000
    assert outcome.purchase.outstanding_cents == 60000
    assert outcome.purchase.status == PurchaseStatus.ACTIVE.value
    assert outcome.waybill is None
    assert wallet_balance(db, customer) == -60000

    credit = db.query(WalletTransaction).filter_by(payment_id=recorded.payment.id).one()
    assert credit.type == "DEPOSIT"
    assert credit.amount_cents == 50000

    receipt = outcome.notifications[0].data
    assert isinstance(receipt, ReceiptData)
    assert receipt.previous_balance_cents == 110000
    assert receipt.new_balance_cents == 60000
    assert receipt.receipt_number.startswith("RCT-")


def test_second_confirm_is_conflict(db, collector_ctx, admin_ctx, credit_purchase, customer):
    """Scenario D: confirming twice never double-credits"""
    recorded = record_payment(db, collector_ctx, credit_purchase.id, 50000, PaymentMethod.CASH)
    confirm_payment(db, admin_ctx, recorded.payment.id)

    with pytest.raises(ConflictError, match="already confirmed"):
        confirm_payment(db, admin_ctx, recorded.payment.id)

    db.expire_all()
    assert credit_purchase.amount_paid_cents == 50000
    assert credit_purchase.outstanding_cents == 60000
    assert wallet_balance(db, customer) == -60000
    assert db.query(WalletTransaction).filter_by(payment_id=recorded.payment.id).count() == 1


def test_final_payment_completes_and_fulfills(db, collector_ctx, admin_ctx, credit_purchase, customer, product, shop):
    """Scenario E: remaining 600.00 completes the purchase, takes stock, one waybill"""
    first = record_payment(db, collector_ctx, credit_purchase.id, 50000, PaymentMethod.CASH)
    confirm_payment(db, admin_ctx, first.payment.id)
    final = record_payment(db, collector_ctx, credit_purchase.id, 60000, PaymentMethod.BANK)

    outcome = confirm_payment(db, admin_ctx, final.payment.id)

    purchase = outcome.purchase
    assert purchase.outstanding_cents == 0
    assert purchase.amount_paid_cents == purchase.total_cents
    assert purchase.status == PurchaseStatus.COMPLETED.value
    assert purchase.delivery_status == DeliveryStatus.SCHEDULED.value
    assert wallet_balance(db, customer) == 0

    stock = db.query(ShopProduct).filter_by(shop_id=shop.id, product_id=product.id).one()
    assert stock.stock_quantity == 4

    waybills = db.query(Waybill).filter_by(purchase_id=purchase.id).all()
    assert len(waybills) == 1
    assert outcome.waybill.waybill_number == waybills[0].waybill_number
    assert waybills[0].recipient_name == "Efua Mensah"
    assert waybills[0].delivery_address == "12 Oxford Street"

    kinds = [type(n.data) for n in outcome.notifications]
    assert kinds == [ReceiptData, WaybillData]
    assert outcome.notifications[0].data.is_fully_paid is True


def test_overpayment_rejected_before_mutation(db, collector_ctx, admin_ctx, credit_purchase):
    """Scenario F: 700.00 against 600.00 outstanding"""
    first = record_payment(db, collector_ctx, credit_purchase.id, 50000, PaymentMethod.CASH)
    confirm_payment(db, admin_ctx, first.payment.id)

    with pytest.raises(ConflictError, match="exceeds outstanding"):
        record_payment(db, collector_ctx, credit_purchase.id, 70000, PaymentMethod.CASH)

    assert db.query(Payment).filter_by(purchase_id=credit_purchase.id).count() == 1


def test_confirm_rechecks_outstanding(db, collector_ctx, admin_ctx, credit_purchase):
    """Two pending payments may not together exceed the balance"""
    a = record_payment(db, collector_ctx, credit_purchase.id, 80000, PaymentMethod.CASH)
    b = record_payment(db, collector_ctx, credit_purchase.id, 80000, PaymentMethod.CASH)
    confirm_payment(db, admin_ctx, a.payment.id)

    with pytest.raises(ConflictError):
        confirm_payment(db, admin_ctx, b.payment.id)

    db.expire_all()
    assert b.payment.is_confirmed is False
    assert credit_purchase.outstanding_cents == 30000


def test_reject_moves_no_money(db, collector_ctx, admin_ctx, credit_purchase, customer):
    recorded = record_payment(db, collector_ctx, credit_purchase.id, 50000, PaymentMethod.CASH)

    outcome = reject_payment(db, admin_ctx, recorded.payment.id, "Cash not received")

    assert outcome.state == PaymentState.REJECTED
    assert outcome.payment.rejection_reason == "Cash not received"
    assert outcome.payment.rejected_by == "admin-1"
    assert credit_purchase.outstanding_cents == 110000
    assert wallet_balance(db, customer) == -110000


def test_rejected_payment_is_terminal(db, collector_ctx, admin_ctx, credit_purchase):
    recorded = record_payment(db, collector_ctx, credit_purchase.id, 50000, PaymentMethod.CASH)
    reject_payment(db, admin_ctx, recorded.payment.id, "Duplicate entry")

    with pytest.raises(ConflictError, match="rejected"):
        reject_payment(db, admin_ctx, recorded.payment.id, "Again")
    with pytest.raises(ConflictError, match="rejected"):
        confirm_payment(db, admin_ctx, recorded.payment.id)


def test_reject_after_confirm_is_conflict(db, collector_ctx, admin_ctx, credit_purchase):
    recorded = record_payment(db, collector_ctx, credit_purchase.id, 50000, PaymentMethod.CASH)
    confirm_payment(db, admin_ctx, recorded.payment.id)

    with pytest.raises(ConflictError, match="already confirmed"):
        reject_payment(db, admin_ctx, recorded.payment.id, "Too late")


def test_reject_requires_reason(db, collector_ctx, admin_ctx, credit_purchase):
    recorded = record_payment(db, collector_ctx, credit_purchase.id, 50000, PaymentMethod.CASH)

    with pytest.raises(ValidationError):
        reject_payment(db, admin_ctx, recorded.payment.id, "   ")


def test_collector_cannot_confirm(db, collector_ctx, credit_purchase):
    recorded = record_payment(db, collector_ctx, credit_purchase.id, 50000, PaymentMethod.CASH)

    with pytest.raises(AuthorizationError):
        confirm_payment(db, collector_ctx, recorded.payment.id)
    with pytest.raises(AuthorizationError):
        record_payment(db, collector_ctx, credit_purchase.id, 10000, PaymentMethod.CASH, auto_confirm=True)


def test_confirm_permission_flag(db, collector_ctx, credit_purchase):
    collector_ctx.membership.can_confirm_payments = True
    db.commit()
    recorded = record_payment(db, collector_ctx, credit_purchase.id, 50000, PaymentMethod.CASH)

    assert confirm_payment(db, collector_ctx, recorded.payment.id).state == PaymentState.CONFIRMED


def test_auto_confirm_by_admin(db, admin_ctx, credit_purchase, customer):
    outcome = record_payment(db, admin_ctx, credit_purchase.id, 110000, PaymentMethod.CARD, auto_confirm=True)

    assert outcome.state == PaymentState.CONFIRMED
    assert outcome.purchase.status == PurchaseStatus.COMPLETED.value
    assert outcome.waybill is not None
    assert wallet_balance(db, customer) == 0


def test_wallet_payment_needs_prepaid_funds(db, collector_ctx, credit_purchase):
    with pytest.raises(ConflictError, match="Insufficient wallet balance"):
        record_payment(db, collector_ctx, credit_purchase.id, 10000, PaymentMethod.WALLET)

    assert db.query(Payment).filter_by(purchase_id=credit_purchase.id).count() == 0


def test_wallet_payment_is_confirmed_inline(db, admin_ctx, collector_ctx, credit_purchase, customer):
    deposit_to_wallet(db, admin_ctx, customer.id, 30000)
    assert wallet_balance(db, customer) == -80000

    outcome = record_payment(db, collector_ctx, credit_purchase.id, 30000, PaymentMethod.WALLET)

    assert outcome.state == PaymentState.CONFIRMED
    assert outcome.purchase.outstanding_cents == 80000
    # Draw and payment credit cancel out; the debt was already netted by the deposit
    assert wallet_balance(db, customer) == -80000
    entries = db.query(WalletTransaction).filter_by(payment_id=outcome.payment.id).order_by(WalletTransaction.id).all()
    assert [e.amount_cents for e in entries] == [-30000, 30000]


def test_pending_payments_listing(db, collector_ctx, admin_ctx, credit_purchase):
    a = record_payment(db, collector_ctx, credit_purchase.id, 10000, PaymentMethod.CASH)
    b = record_payment(db, collector_ctx, credit_purchase.id, 20000, PaymentMethod.CASH)
    c = record_payment(db, collector_ctx, credit_purchase.id, 30000, PaymentMethod.CASH)
    confirm_payment(db, admin_ctx, a.payment.id)
    reject_payment(db, admin_ctx, b.payment.id, "Bounced")

    pending = list_pending_payments(db, admin_ctx)

    assert [p.id for p in pending] == [c.payment.id]
    with pytest.raises(AuthorizationError):
        list_pending_payments(db, collector_ctx)


def test_stock_underflow_aborts_confirmation(db, collector_ctx, admin_ctx, credit_purchase, customer, product, shop):
    """Stock sold elsewhere meanwhile: the whole confirmation rolls back"""
    db.query(ShopProduct).filter_by(shop_id=shop.id, product_id=product.id).update({"stock_quantity": 0})
    db.commit()
    recorded = record_payment(db, collector_ctx, credit_purchase.id, 110000, PaymentMethod.CASH)

    with pytest.raises(IntegrityFault):
        confirm_payment(db, admin_ctx, recorded.payment.id)

    db.expire_all()
    assert recorded.payment.is_confirmed is False
    assert credit_purchase.outstanding_cents == 110000
    assert credit_purchase.status == PurchaseStatus.PENDING.value
    assert wallet_balance(db, customer) == -110000
    assert db.query(Waybill).count() == 0


async def test_notification_failures_are_isolated(db, collector_ctx, credit_purchase):
    outcome = record_payment(db, collector_ctx, credit_purchase.id, 50000, PaymentMethod.CASH)

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("notifier down")

    client = NotificationClient(webhook_url="http://notifier.test/hook", transport=httpx.MockTransport(handler))
    client.max_retries = 1

    delivered = await dispatch_notifications(client, outcome.notifications)

    assert delivered == 0


async def test_notifications_are_delivered(db, collector_ctx, credit_purchase, notification_client, sent_notifications):
    outcome = record_payment(db, collector_ctx, credit_purchase.id, 50000, PaymentMethod.CASH)

    delivered = await dispatch_notifications(notification_client, outcome.notifications)

    assert delivered == 1
    assert len(sent_notifications) == 1
    assert b"payment_pending" in sent_notifications[0].content

"""Integration tests for competing confirmations and stock deductions"""

import threading
import pytest
from concurrent.futures import ThreadPoolExecutor
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from bnpl_ledger.domain.exceptions import ConflictError, IntegrityFault
from bnpl_ledger.domain.models import CartLine, NewPurchase, PaymentMethod, PurchaseStatus, PurchaseType
from bnpl_ledger.infrastructure.database.models import Customer, Payment, Purchase, ShopProduct, Waybill
from bnpl_ledger.infrastructure.database.repositories import ProductRepository
from bnpl_ledger.infrastructure.database.session import transaction
from bnpl_ledger.services.identity import resolve_shop_context
from bnpl_ledger.services.payments import confirm_payment, record_payment
from bnpl_ledger.services.purchases import create_purchase

ADMIN = "admin-1"


@pytest.fixture
def locking_sessions(db):
    """
    Sessions on their own engine whose transactions open with BEGIN IMMEDIATE.

    SQLite has no row locks; taking the database write lock up front makes
    each transaction exclusive the way SELECT ... FOR UPDATE is on Postgres.
    """
    engine = create_engine(db.get_bind().url, connect_args={"check_same_thread": False, "timeout": 30})

    @event.listens_for(engine, "connect")
    def disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


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


def run_together(worker, *args_per_thread):
    """Start one worker per argument tuple and release them at the same moment"""
    barrier = threading.Barrier(len(args_per_thread), timeout=30)
    with ThreadPoolExecutor(max_workers=len(args_per_thread)) as pool:
        futures = [pool.submit(worker, barrier, *args) for args in args_per_thread]
        return [f.result(timeout=60) for f in futures]


def confirm_in_own_session(barrier, make_session, shop_id, payment_id) -> str:
    session = make_session()
    try:
        ctx = resolve_shop_context(session, shop_id, ADMIN)
        session.commit()
        barrier.wait()
        try:
            confirm_payment(session, ctx, payment_id)
            return "confirmed"
        except ConflictError:
            return "conflict"
        except IntegrityFault:
            return "out_of_stock"
    finally:
        session.close()


def test_concurrent_confirmations_apply_once(db, locking_sessions, admin_ctx, collector_ctx, flat_policy, customer, product, shop):
    purchase = credit_sale(db, admin_ctx, customer, product)
    payment_id = record_payment(db, collector_ctx, purchase.id, 50000, PaymentMethod.CASH).payment.id
    purchase_id, shop_id = purchase.id, shop.id

    results = run_together(
        confirm_in_own_session,
        (locking_sessions, shop_id, payment_id),
        (locking_sessions, shop_id, payment_id),
    )

    assert sorted(results) == ["confirmed", "conflict"]
    db.expire_all()
    assert db.get(Payment, payment_id).is_confirmed is True
    assert db.get(Purchase, purchase_id).amount_paid_cents == 50000
    assert db.get(Customer, customer.id).wallet_balance_cents == -60000


def test_last_unit_goes_to_one_purchase(db, locking_sessions, admin_ctx, collector_ctx, flat_policy, customer, product, shop):
    """Two final payments confirmed at once with one unit left: one completes, one rolls back"""
    first = credit_sale(db, admin_ctx, customer, product)
    second = credit_sale(db, admin_ctx, customer, product)
    payment_ids = [
        record_payment(db, collector_ctx, p.id, 110000, PaymentMethod.CASH).payment.id for p in (first, second)
    ]
    db.query(ShopProduct).filter_by(shop_id=shop.id, product_id=product.id).update({"stock_quantity": 1})
    db.commit()
    shop_id, product_id = shop.id, product.id

    results = run_together(
        confirm_in_own_session,
        (locking_sessions, shop_id, payment_ids[0]),
        (locking_sessions, shop_id, payment_ids[1]),
    )

    assert sorted(results) == ["confirmed", "out_of_stock"]
    db.expire_all()
    assert db.query(ShopProduct).filter_by(shop_id=shop_id, product_id=product_id).one().stock_quantity == 0
    assert db.query(Waybill).count() == 1
    statuses = sorted(db.get(Purchase, p.id).status for p in (first, second))
    assert statuses == [PurchaseStatus.COMPLETED.value, PurchaseStatus.PENDING.value]
    assert [db.get(Payment, pid).is_confirmed for pid in payment_ids].count(True) == 1


def test_conditional_decrement_never_oversells(db, locking_sessions, product, shop):
    db.query(ShopProduct).filter_by(shop_id=shop.id, product_id=product.id).update({"stock_quantity": 1})
    db.commit()
    shop_id, product_id = shop.id, product.id

    def decrement(barrier, make_session) -> bool:
        session = make_session()
        try:
            barrier.wait()
            with transaction(session):
                return ProductRepository(session).decrement_stock(shop_id, product_id, 1)
        finally:
            session.close()

    results = run_together(decrement, (locking_sessions,), (locking_sessions,), (locking_sessions,))

    assert sorted(results) == [False, False, True]
    db.expire_all()
    assert db.query(ShopProduct).filter_by(shop_id=shop_id, product_id=product_id).one().stock_quantity == 0


@pytest.fixture
def second_session(db) -> Session:
    session = sessionmaker(autocommit=False, autoflush=False, bind=db.get_bind())()
    yield session
    session.close()


def test_stale_session_cannot_confirm_twice(db, second_session, admin_ctx, collector_ctx, flat_policy, customer, product, shop):
    """A session holding an old copy of the payment still sees the committed confirmation"""
    purchase = credit_sale(db, admin_ctx, customer, product)
    payment_id = record_payment(db, collector_ctx, purchase.id, 50000, PaymentMethod.CASH).payment.id

    other_ctx = resolve_shop_context(second_session, shop.id, ADMIN)
    stale = second_session.get(Payment, payment_id)
    assert stale.is_confirmed is False

    confirm_payment(db, admin_ctx, payment_id)

    with pytest.raises(ConflictError):
        confirm_payment(second_session, other_ctx, payment_id)

    db.expire_all()
    assert db.get(Purchase, purchase.id).amount_paid_cents == 50000
    assert db.get(Customer, customer.id).wallet_balance_cents == -60000

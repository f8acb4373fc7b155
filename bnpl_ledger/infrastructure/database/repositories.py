"""Data access layer for tenants, purchases, payments and the wallet ledger"""

import uuid
from decimal import Decimal
from typing import List, Optional
from sqlalchemy import func, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session
from bnpl_ledger.infrastructure.database.models import (
    Customer,
    FinancingPolicyRecord,
    Payment,
    Product,
    Purchase,
    SequenceCounter,
    Shop,
    ShopProduct,
    WalletTransaction,
    Waybill,
)
from bnpl_ledger.domain.models import DeliveryStatus, FinancingPolicy, InterestType, PurchaseStatus, PurchaseType
from bnpl_ledger.domain.policy import resolve_policy


def _to_policy(record: Optional[FinancingPolicyRecord]) -> Optional[FinancingPolicy]:
    if record is None:
        return None
    return FinancingPolicy(
        interest_type=InterestType(record.interest_type),
        interest_rate=Decimal(record.interest_rate),
        grace_days=record.grace_days,
        max_tenor_days=record.max_tenor_days,
        late_fee_fixed_cents=record.late_fee_fixed_cents,
        late_fee_rate=Decimal(record.late_fee_rate) if record.late_fee_rate is not None else None,
    )


class PolicyRepository:
    """Repository for shop and business financing policies"""

    def __init__(self, db: Session):
        self.db = db

    def get_for_shop(self, shop_id: uuid.UUID) -> Optional[FinancingPolicy]:
        record = self.db.query(FinancingPolicyRecord).filter(FinancingPolicyRecord.shop_id == shop_id).first()
        return _to_policy(record)

    def get_for_business(self, business_id: uuid.UUID) -> Optional[FinancingPolicy]:
        record = (
            self.db.query(FinancingPolicyRecord)
            .filter(FinancingPolicyRecord.business_id == business_id)
            .first()
        )
        return _to_policy(record)

    def resolve_for_shop(self, shop: Shop) -> Optional[FinancingPolicy]:
        """Effective policy: the shop's own, else its business's, else None"""
        return resolve_policy(self.get_for_shop(shop.id), self.get_for_business(shop.business_id))

    def upsert(
        self,
        policy: FinancingPolicy,
        shop_id: uuid.UUID | None = None,
        business_id: uuid.UUID | None = None,
    ) -> FinancingPolicyRecord:
        """Create or replace the policy owned by a shop or a business"""
        query = self.db.query(FinancingPolicyRecord)
        if shop_id is not None:
            record = query.filter(FinancingPolicyRecord.shop_id == shop_id).first()
        else:
            record = query.filter(FinancingPolicyRecord.business_id == business_id).first()

        if record is None:
            record = FinancingPolicyRecord(shop_id=shop_id, business_id=None if shop_id else business_id)
            self.db.add(record)

        record.interest_type = policy.interest_type.value
        record.interest_rate = policy.interest_rate
        record.grace_days = policy.grace_days
        record.max_tenor_days = policy.max_tenor_days
        record.late_fee_fixed_cents = policy.late_fee_fixed_cents
        record.late_fee_rate = policy.late_fee_rate
        self.db.flush()
        return record


class CustomerRepository:
    """Repository for customers and their cached wallet balance"""

    def __init__(self, db: Session):
        self.db = db

    def get_in_shop(self, customer_id: uuid.UUID, shop_id: uuid.UUID) -> Optional[Customer]:
        return (
            self.db.query(Customer)
            .filter(Customer.id == customer_id, Customer.shop_id == shop_id)
            .first()
        )

    def lock(self, customer_id: uuid.UUID) -> Customer:
        """Fetch the customer row under a write lock, refreshing any cached state"""
        return (
            self.db.query(Customer)
            .filter(Customer.id == customer_id)
            .with_for_update()
            .populate_existing()
            .one()
        )


class ProductRepository:
    """Repository for products and shop-scoped stock"""

    def __init__(self, db: Session):
        self.db = db

    def get_in_business(self, product_id: uuid.UUID, business_id: uuid.UUID) -> Optional[Product]:
        return (
            self.db.query(Product)
            .filter(Product.id == product_id, Product.business_id == business_id, Product.is_active.is_(True))
            .first()
        )

    def get_shop_stock(self, shop_id: uuid.UUID, product_id: uuid.UUID) -> Optional[ShopProduct]:
        return (
            self.db.query(ShopProduct)
            .filter(ShopProduct.shop_id == shop_id, ShopProduct.product_id == product_id)
            .first()
        )

    def available_stock(self, shop_id: uuid.UUID, product: Product) -> int:
        """Shop-scoped stock when a shop record exists, else the product's global stock"""
        shop_stock = self.get_shop_stock(shop_id, product.id)
        if shop_stock is not None:
            return shop_stock.stock_quantity
        return product.stock_quantity

    def set_shop_stock(self, shop_id: uuid.UUID, product_id: uuid.UUID, quantity: int) -> ShopProduct:
        shop_stock = self.get_shop_stock(shop_id, product_id)
        if shop_stock is None:
            shop_stock = ShopProduct(shop_id=shop_id, product_id=product_id, stock_quantity=quantity)
            self.db.add(shop_stock)
        else:
            shop_stock.stock_quantity = quantity
        self.db.flush()
        return shop_stock

    def decrement_stock(self, shop_id: uuid.UUID, product_id: uuid.UUID, quantity: int) -> bool:
        """
        Atomic decrement-with-check.

        Targets the shop-scoped row when one exists, else the global product
        row. Returns False when the row would go negative (nothing is written).
        """
        if self.get_shop_stock(shop_id, product_id) is not None:
            statement = (
                update(ShopProduct)
                .where(
                    ShopProduct.shop_id == shop_id,
                    ShopProduct.product_id == product_id,
                    ShopProduct.stock_quantity >= quantity,
                )
                .values(stock_quantity=ShopProduct.stock_quantity - quantity)
            )
        else:
            statement = (
                update(Product)
                .where(Product.id == product_id, Product.stock_quantity >= quantity)
                .values(stock_quantity=Product.stock_quantity - quantity)
            )

        result = self.db.execute(statement.execution_options(synchronize_session="fetch"))
        return result.rowcount == 1


class PurchaseRepository:
    """Repository for purchases"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, purchase: Purchase) -> Purchase:
        self.db.add(purchase)
        self.db.flush()  # Get ID without committing
        return purchase

    def get_in_shop(self, purchase_id: uuid.UUID, shop_id: uuid.UUID, for_update: bool = False) -> Optional[Purchase]:
        query = self.db.query(Purchase).filter(Purchase.id == purchase_id, Purchase.shop_id == shop_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def lock(self, purchase_id: uuid.UUID) -> Purchase:
        return (
            self.db.query(Purchase)
            .filter(Purchase.id == purchase_id)
            .with_for_update()
            .populate_existing()
            .one()
        )

    def list_for_shop(self, shop_id: uuid.UUID, customer_id: uuid.UUID | None = None, limit: int = 100) -> List[Purchase]:
        query = self.db.query(Purchase).filter(Purchase.shop_id == shop_id)
        if customer_id is not None:
            query = query.filter(Purchase.customer_id == customer_id)
        return query.order_by(Purchase.created_at.desc()).limit(limit).all()

    def open_purchases(self, shop_ids: List[uuid.UUID]) -> List[Purchase]:
        """Purchases with money still owed, for reporting"""
        return (
            self.db.query(Purchase)
            .filter(
                Purchase.shop_id.in_(shop_ids),
                Purchase.status.in_([PurchaseStatus.PENDING.value, PurchaseStatus.ACTIVE.value]),
                Purchase.outstanding_cents > 0,
            )
            .all()
        )

    def open_financed_for_customer(self, customer_id: uuid.UUID, for_update: bool = False) -> List[Purchase]:
        """Open LAYAWAY/CREDIT purchases, oldest due date first; with for_update the rows are locked in that order"""
        query = (
            self.db.query(Purchase)
            .filter(
                Purchase.customer_id == customer_id,
                Purchase.purchase_type != PurchaseType.CASH.value,
                Purchase.status.in_([PurchaseStatus.PENDING.value, PurchaseStatus.ACTIVE.value]),
                Purchase.outstanding_cents > 0,
            )
            .order_by(Purchase.due_date.asc(), Purchase.id.asc())
        )
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.all()

    def ready_for_delivery(self, shop_id: uuid.UUID) -> List[Purchase]:
        """Fully paid purchases with a waybill that have not been delivered yet"""
        return (
            self.db.query(Purchase)
            .join(Waybill, Waybill.purchase_id == Purchase.id)
            .filter(
                Purchase.shop_id == shop_id,
                Purchase.status == PurchaseStatus.COMPLETED.value,
                Purchase.delivery_status != DeliveryStatus.DELIVERED.value,
            )
            .order_by(Waybill.created_at.asc())
            .all()
        )

    def financed_debt_for_customer(self, customer_id: uuid.UUID) -> int:
        """Outstanding balance already posted to the wallet as debt"""
        total = (
            self.db.query(func.coalesce(func.sum(Purchase.outstanding_cents), 0))
            .filter(
                Purchase.customer_id == customer_id,
                Purchase.purchase_type != PurchaseType.CASH.value,
                Purchase.status.in_([PurchaseStatus.PENDING.value, PurchaseStatus.ACTIVE.value]),
            )
            .scalar()
        )
        return int(total)


class PaymentRepository:
    """Repository for payments"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, payment: Payment) -> Payment:
        self.db.add(payment)
        self.db.flush()
        return payment

    def get_in_shop(self, payment_id: uuid.UUID, shop_id: uuid.UUID, for_update: bool = False) -> Optional[Payment]:
        """Payment scoped to a shop; with for_update the row is locked until commit"""
        query = (
            self.db.query(Payment)
            .join(Purchase, Payment.purchase_id == Purchase.id)
            .filter(Payment.id == payment_id, Purchase.shop_id == shop_id)
        )
        if for_update:
            query = query.with_for_update(of=Payment).populate_existing()
        return query.first()

    def list_pending(self, shop_id: uuid.UUID) -> List[Payment]:
        """Payments awaiting supervisor confirmation"""
        return (
            self.db.query(Payment)
            .join(Purchase, Payment.purchase_id == Purchase.id)
            .filter(
                Purchase.shop_id == shop_id,
                Payment.is_confirmed.is_(False),
                Payment.rejected_at.is_(None),
            )
            .order_by(Payment.created_at.asc())
            .all()
        )

    def confirmed_counts(self, purchase_ids: List[uuid.UUID]) -> dict:
        rows = (
            self.db.query(Payment.purchase_id, func.count(Payment.id))
            .filter(Payment.purchase_id.in_(purchase_ids), Payment.is_confirmed.is_(True))
            .group_by(Payment.purchase_id)
            .all()
        )
        return {purchase_id: count for purchase_id, count in rows}


class WalletRepository:
    """Repository for the append-only wallet ledger"""

    def __init__(self, db: Session):
        self.db = db

    def append(self, entry: WalletTransaction) -> WalletTransaction:
        self.db.add(entry)
        self.db.flush()
        return entry

    def list_for_customer(self, customer_id: uuid.UUID, limit: int | None = None) -> List[WalletTransaction]:
        """Ledger rows in posting order; with a limit, the most recent rows"""
        query = self.db.query(WalletTransaction).filter(WalletTransaction.customer_id == customer_id)
        if limit is None:
            return query.order_by(WalletTransaction.id.asc()).all()
        recent = query.order_by(WalletTransaction.id.desc()).limit(limit).all()
        return list(reversed(recent))

    def latest(self, customer_id: uuid.UUID) -> Optional[WalletTransaction]:
        return (
            self.db.query(WalletTransaction)
            .filter(WalletTransaction.customer_id == customer_id, WalletTransaction.status == "CONFIRMED")
            .order_by(WalletTransaction.id.desc())
            .first()
        )


class WaybillRepository:
    """Repository for waybills"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_purchase(self, purchase_id: uuid.UUID) -> Optional[Waybill]:
        return self.db.query(Waybill).filter(Waybill.purchase_id == purchase_id).first()

    def add(self, waybill: Waybill) -> Waybill:
        self.db.add(waybill)
        self.db.flush()
        return waybill


class SequenceRepository:
    """Counters for human-readable reference numbers"""

    def __init__(self, db: Session):
        self.db = db

    def _locked(self, scope: str) -> Optional[SequenceCounter]:
        return (
            self.db.query(SequenceCounter)
            .filter(SequenceCounter.scope == scope)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def _create(self, scope: str) -> None:
        """Insert the scope's counter unless another transaction already has"""
        insert = pg_insert if self.db.get_bind().dialect.name == "postgresql" else sqlite_insert
        self.db.execute(
            insert(SequenceCounter)
            .values(id=uuid.uuid4(), scope=scope, next_value=1)
            .on_conflict_do_nothing(index_elements=[SequenceCounter.scope])
        )

    def next_value(self, scope: str) -> int:
        """
        Next number in a scope, creating the counter on first use.

        The counter row is locked until the surrounding transaction ends, so
        concurrent callers in the same scope are serialized. Two first callers
        race only on the insert, which tolerates the conflict; both then queue
        on the same row lock. Does not commit.
        """
        counter = self._locked(scope)
        if counter is None:
            self._create(scope)
            counter = self._locked(scope)

        current = counter.next_value
        counter.next_value = current + 1
        self.db.flush()
        return current


def scoped_shop_ids(db: Session, business_id: uuid.UUID, shop_id: uuid.UUID | None = None) -> List[uuid.UUID]:
    """Shops of a business, optionally narrowed to one"""
    query = db.query(Shop.id).filter(Shop.business_id == business_id)
    if shop_id is not None:
        query = query.filter(Shop.id == shop_id)
    return [row[0] for row in query.all()]


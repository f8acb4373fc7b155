"""SQLAlchemy ORM models for tenants, purchases, payments and the wallet ledger"""

import uuid
from sqlalchemy import (
    Column,
    String,
    BigInteger,
    Boolean,
    Numeric,
    DateTime,
    Date,
    Integer,
    ForeignKey,
    Text,
    Uuid,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class Business(Base):
    """Tenant root: owns shops, products and a fallback financing policy"""

    __tablename__ = "business"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    slug = Column(String(100), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    shops = relationship("Shop", back_populates="business")


class Shop(Base):
    """Retail outlet within a business"""

    __tablename__ = "shop"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("business.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    slug = Column(String(100), nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    business = relationship("Business", back_populates="shops")


class StaffMembership(Base):
    """Role an actor holds in a shop (or business-wide when shop_id is null)"""

    __tablename__ = "staff_membership"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    actor_id = Column(Text, nullable=False, index=True)
    business_id = Column(Uuid, ForeignKey("business.id", ondelete="CASCADE"), nullable=False)
    shop_id = Column(Uuid, ForeignKey("shop.id", ondelete="CASCADE"), nullable=True)
    name = Column(Text, nullable=False)
    role = Column(String(20), nullable=False)
    can_confirm_payments = Column(Boolean, nullable=False, default=False)
    can_load_wallet = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)


class FinancingPolicyRecord(Base):
    """Interest and tenor rules owned by a shop or by its business"""

    __tablename__ = "financing_policy"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    shop_id = Column(Uuid, ForeignKey("shop.id", ondelete="CASCADE"), nullable=True, unique=True)
    business_id = Column(Uuid, ForeignKey("business.id", ondelete="CASCADE"), nullable=True, unique=True)
    interest_type = Column(String(10), nullable=False, default="FLAT")
    interest_rate = Column(Numeric(5, 2), nullable=False, default=0)
    grace_days = Column(Integer, nullable=False, default=3)
    max_tenor_days = Column(Integer, nullable=False, default=60)
    late_fee_fixed_cents = Column(BigInteger, nullable=True)
    late_fee_rate = Column(Numeric(5, 2), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class Customer(Base):
    """Shop customer; wallet_balance_cents is a cache of the ledger"""

    __tablename__ = "customer"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    shop_id = Column(Uuid, ForeignKey("shop.id", ondelete="CASCADE"), nullable=False, index=True)
    first_name = Column(Text, nullable=False)
    last_name = Column(Text, nullable=False)
    phone = Column(Text, nullable=False)
    email = Column(Text, nullable=True)
    address = Column(Text, nullable=True)
    city = Column(Text, nullable=True)
    region = Column(Text, nullable=True)
    wallet_balance_cents = Column(BigInteger, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    purchases = relationship("Purchase", back_populates="customer")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Product(Base):
    """Catalogue product with tiered prices and global stock"""

    __tablename__ = "product"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("business.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    sku = Column(String(64), nullable=True)
    cash_price_cents = Column(BigInteger, nullable=False)
    layaway_price_cents = Column(BigInteger, nullable=False)
    credit_price_cents = Column(BigInteger, nullable=False)
    stock_quantity = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ShopProduct(Base):
    """Shop-scoped stock for a product; takes precedence over Product.stock_quantity"""

    __tablename__ = "shop_product"
    __table_args__ = (UniqueConstraint("shop_id", "product_id", name="uq_shop_product"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    shop_id = Column(Uuid, ForeignKey("shop.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Uuid, ForeignKey("product.id", ondelete="CASCADE"), nullable=False, index=True)
    stock_quantity = Column(Integer, nullable=False, default=0)


class Purchase(Base):
    """Financed (or cash) sale"""

    __tablename__ = "purchase"
    __table_args__ = (UniqueConstraint("customer_id", "purchase_number", name="uq_purchase_number"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    purchase_number = Column(String(20), nullable=False)
    customer_id = Column(Uuid, ForeignKey("customer.id"), nullable=False, index=True)
    shop_id = Column(Uuid, ForeignKey("shop.id"), nullable=False, index=True)
    purchase_type = Column(String(10), nullable=False)
    status = Column(String(10), nullable=False, default="PENDING")
    subtotal_cents = Column(BigInteger, nullable=False)
    interest_cents = Column(BigInteger, nullable=False, default=0)
    total_cents = Column(BigInteger, nullable=False)
    amount_paid_cents = Column(BigInteger, nullable=False, default=0)
    outstanding_cents = Column(BigInteger, nullable=False)
    down_payment_cents = Column(BigInteger, nullable=False, default=0)
    installments = Column(Integer, nullable=False, default=1)
    tenor_days = Column(Integer, nullable=False, default=0)
    interest_type = Column(String(10), nullable=True)
    interest_rate = Column(Numeric(5, 2), nullable=False, default=0)
    start_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)
    delivery_status = Column(String(12), nullable=False, default="PENDING")
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    delivered_by = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer", back_populates="purchases")
    items = relationship(
        "PurchaseItem",
        back_populates="purchase",
        cascade="all, delete-orphan",
        order_by="PurchaseItem.position",
    )
    payments = relationship("Payment", back_populates="purchase", order_by="Payment.created_at")
    waybill = relationship("Waybill", back_populates="purchase", uselist=False)


class PurchaseItem(Base):
    """Product snapshot taken at sale time"""

    __tablename__ = "purchase_item"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    purchase_id = Column(Uuid, ForeignKey("purchase.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Uuid, ForeignKey("product.id"), nullable=True)
    position = Column(Integer, nullable=False, default=0)
    product_name = Column(Text, nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price_cents = Column(BigInteger, nullable=False)
    line_total_cents = Column(BigInteger, nullable=False)

    purchase = relationship("Purchase", back_populates="items")


class Payment(Base):
    """One money-movement attempt against a purchase"""

    __tablename__ = "payment"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    purchase_id = Column(Uuid, ForeignKey("purchase.id"), nullable=False, index=True)
    amount_cents = Column(BigInteger, nullable=False)
    payment_method = Column(String(20), nullable=False)
    is_confirmed = Column(Boolean, nullable=False, default=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_by = Column(Text, nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejected_by = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    collector_id = Column(Text, nullable=True)
    recorded_by = Column(Text, nullable=True)
    reference = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    purchase = relationship("Purchase", back_populates="payments")


class WalletTransaction(Base):
    """
    Append-only wallet ledger entry.

    amount_cents is signed: positive credits the wallet, negative debits it,
    so balance_after_cents - balance_before_cents == amount_cents.
    """

    __tablename__ = "wallet_transaction"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Uuid, ForeignKey("customer.id"), nullable=False, index=True)
    shop_id = Column(Uuid, ForeignKey("shop.id"), nullable=False)
    purchase_id = Column(Uuid, ForeignKey("purchase.id"), nullable=True, index=True)
    payment_id = Column(Uuid, ForeignKey("payment.id"), nullable=True)
    type = Column(String(12), nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    balance_before_cents = Column(BigInteger, nullable=False)
    balance_after_cents = Column(BigInteger, nullable=False)
    status = Column(String(10), nullable=False, default="CONFIRMED")
    payment_method = Column(String(20), nullable=True)
    reference = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    created_by = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Waybill(Base):
    """Delivery authorization, at most one per purchase"""

    __tablename__ = "waybill"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    waybill_number = Column(String(32), nullable=False, unique=True)
    purchase_id = Column(Uuid, ForeignKey("purchase.id"), nullable=False, unique=True)
    recipient_name = Column(Text, nullable=False)
    recipient_phone = Column(Text, nullable=False)
    delivery_address = Column(Text, nullable=False)
    delivery_city = Column(Text, nullable=True)
    delivery_region = Column(Text, nullable=True)
    special_instructions = Column(Text, nullable=True)
    generated_by = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    purchase = relationship("Purchase", back_populates="waybill")


class SequenceCounter(Base):
    """Row-locked counter backing purchase and waybill numbers"""

    __tablename__ = "sequence_counter"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    scope = Column(String(100), nullable=False, unique=True)
    next_value = Column(BigInteger, nullable=False, default=1)

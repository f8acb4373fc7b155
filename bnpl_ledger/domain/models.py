"""Domain models - pure Python dataclasses representing business entities"""

import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional


class InterestType(str, Enum):
    FLAT = "FLAT"
    MONTHLY = "MONTHLY"


class PurchaseType(str, Enum):
    CASH = "CASH"
    LAYAWAY = "LAYAWAY"
    CREDIT = "CREDIT"


class PurchaseStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    OVERDUE = "OVERDUE"  # Reported only, never stored
    COMPLETED = "COMPLETED"


class DeliveryStatus(str, Enum):
    PENDING = "PENDING"
    SCHEDULED = "SCHEDULED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    BANK = "BANK"
    MOBILE_MONEY = "MOBILE_MONEY"
    CARD = "CARD"
    WALLET = "WALLET"


class PaymentState(str, Enum):
    RECORDED = "RECORDED"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"


class WalletTransactionType(str, Enum):
    PURCHASE = "PURCHASE"
    DEPOSIT = "DEPOSIT"
    REFUND = "REFUND"
    ADJUSTMENT = "ADJUSTMENT"


class StaffRole(str, Enum):
    BUSINESS_ADMIN = "BUSINESS_ADMIN"
    SHOP_ADMIN = "SHOP_ADMIN"
    SALES_STAFF = "SALES_STAFF"
    COLLECTOR = "COLLECTOR"
    ACCOUNTANT = "ACCOUNTANT"


@dataclass
class FinancingPolicy:
    """Effective interest and tenor rules for a sale"""

    interest_type: InterestType
    interest_rate: Decimal  # Percent, e.g. Decimal("10") for 10%
    grace_days: int
    max_tenor_days: int
    late_fee_fixed_cents: Optional[int] = None
    late_fee_rate: Optional[Decimal] = None


@dataclass
class PricedLine:
    """Unit price and quantity of one cart line"""

    unit_price_cents: int
    quantity: int


@dataclass
class PricingQuote:
    """Output of the pricing calculator"""

    subtotal_cents: int
    interest_cents: int
    total_cents: int
    tenor_days: int
    due_date: date
    interest_type: Optional[InterestType] = None
    interest_rate: Decimal = Decimal("0")


@dataclass
class Installment:
    """Single payment in a repayment schedule"""

    due_date: date
    amount_cents: int


@dataclass
class AgingRow:
    """Outstanding balance of one customer split by age"""

    customer_id: str
    customer_name: str
    current_cents: int = 0
    days_31_to_60_cents: int = 0
    days_61_to_90_cents: int = 0
    over_90_cents: int = 0
    oldest_due_date: Optional[date] = None

    @property
    def total_outstanding_cents(self) -> int:
        return self.current_cents + self.days_31_to_60_cents + self.days_61_to_90_cents + self.over_90_cents


@dataclass
class OpenBalance:
    """Minimal view of an open purchase used by reporting"""

    purchase_id: str
    purchase_number: str
    customer_id: str
    customer_name: str
    total_cents: int
    outstanding_cents: int
    due_date: Optional[date]
    confirmed_payment_count: int = 0
    shop_id: Optional[str] = None


@dataclass
class BadDebtItem:
    """Overdue purchase with its risk assessment"""

    purchase_id: str
    purchase_number: str
    customer_id: str
    customer_name: str
    outstanding_cents: int
    days_overdue: int
    payment_count: int
    risk_score: int
    late_fee_cents: int = 0


@dataclass
class BadDebtSummary:
    """Aggregate figures for the bad-debt report"""

    total_at_risk_cents: int
    high_risk_count: int
    medium_risk_count: int
    low_risk_count: int
    write_off_candidates: int
    escalation_required: int
    payment_plan_eligible: int
    items: List[BadDebtItem] = field(default_factory=list)


@dataclass
class CartLine:
    """Product and quantity requested at checkout"""

    product_id: uuid.UUID
    quantity: int


@dataclass
class NewPurchase:
    """Checkout request for a single customer"""

    customer_id: uuid.UUID
    purchase_type: PurchaseType
    lines: List[CartLine]
    down_payment_cents: int = 0
    wallet_amount_cents: int = 0
    installments: Optional[int] = None
    tenor_days: Optional[int] = None
    notes: Optional[str] = None

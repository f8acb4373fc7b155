"""Pydantic schemas for API request/response validation"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from pydantic import BaseModel, Field
from typing import List, Optional

from bnpl_ledger.domain.models import DeliveryStatus, InterestType, PaymentMethod, PurchaseType


class PolicySchema(BaseModel):
    """Financing policy owned by a shop or business"""

    interest_type: InterestType
    interest_rate: Decimal = Field(..., ge=0, le=100, description="Percent, e.g. 10 for 10%")
    grace_days: int = Field(3, ge=0, le=60)
    max_tenor_days: int = Field(60, ge=1, le=365)
    late_fee_fixed_cents: Optional[int] = Field(None, ge=0)
    late_fee_rate: Optional[Decimal] = Field(None, ge=0)


class EffectivePolicyResponse(BaseModel):
    """Response for GET /v1/shops/{shop_id}/policy"""

    configured: bool
    policy: Optional[PolicySchema] = None


class ProductRequest(BaseModel):
    """Request body for PUT /v1/shops/{shop_id}/products"""

    product_id: Optional[uuid.UUID] = None
    name: str = Field(..., min_length=1)
    sku: Optional[str] = None
    cash_price_cents: int = Field(..., ge=0)
    layaway_price_cents: int = Field(..., ge=0)
    credit_price_cents: int = Field(..., ge=0)
    stock_quantity: int = Field(0, ge=0)


class ProductResponse(BaseModel):
    product_id: str
    name: str
    sku: Optional[str] = None
    cash_price_cents: int
    layaway_price_cents: int
    credit_price_cents: int
    stock_quantity: int


class ShopStockRequest(BaseModel):
    quantity: int = Field(..., ge=0)


class ShopStockResponse(BaseModel):
    product_id: str
    shop_id: str
    stock_quantity: int


class CartLineSchema(BaseModel):
    product_id: uuid.UUID
    quantity: int = Field(..., ge=1)


class PurchaseRequest(BaseModel):
    """Request body for POST /v1/shops/{shop_id}/purchases"""

    customer_id: uuid.UUID
    purchase_type: PurchaseType
    items: List[CartLineSchema] = Field(..., min_length=1)
    down_payment_cents: int = Field(0, ge=0, description="Cash tendered at the counter")
    wallet_amount_cents: int = Field(0, ge=0, description="Prepaid wallet funds applied")
    installments: Optional[int] = Field(None, ge=1)
    tenor_days: Optional[int] = Field(None, ge=1)
    notes: Optional[str] = None


class UpdateItemsRequest(BaseModel):
    """Request body for PUT /v1/shops/{shop_id}/purchases/{purchase_id}/items"""

    items: List[CartLineSchema] = Field(..., min_length=1)


class PurchaseItemSchema(BaseModel):
    product_id: Optional[str] = None
    product_name: str
    quantity: int
    unit_price_cents: int
    line_total_cents: int


class PurchaseResponse(BaseModel):
    """A purchase with its reported (possibly OVERDUE) status"""

    purchase_id: str
    purchase_number: str
    customer_id: str
    purchase_type: str
    status: str
    subtotal_cents: int
    interest_cents: int
    total_cents: int
    amount_paid_cents: int
    outstanding_cents: int
    down_payment_cents: int
    installments: int
    tenor_days: int
    start_date: date
    due_date: Optional[date] = None
    delivery_status: str
    items: List[PurchaseItemSchema]
    waybill_number: Optional[str] = None
    delivered_at: Optional[datetime] = None


class PurchaseListResponse(BaseModel):
    purchases: List[PurchaseResponse]


class DeliveryStatusRequest(BaseModel):
    """Request body for PUT /v1/shops/{shop_id}/purchases/{purchase_id}/delivery-status"""

    status: DeliveryStatus


class InstallmentSchema(BaseModel):
    """Single installment in a repayment schedule"""

    due_date: date
    amount_cents: int


class ScheduleResponse(BaseModel):
    purchase_id: str
    outstanding_cents: int
    installments: List[InstallmentSchema]


class PaymentRequest(BaseModel):
    """Request body for POST /v1/shops/{shop_id}/purchases/{purchase_id}/payments"""

    amount_cents: int = Field(..., gt=0, description="Payment amount in cents")
    payment_method: PaymentMethod
    collector_id: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    paid_at: Optional[datetime] = None
    auto_confirm: bool = False


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class PaymentResponse(BaseModel):
    payment_id: str
    purchase_id: str
    amount_cents: int
    payment_method: str
    state: str
    collector_id: Optional[str] = None
    reference: Optional[str] = None
    confirmed_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    purchase_status: str
    outstanding_cents: int
    waybill_number: Optional[str] = None


class PendingPaymentsResponse(BaseModel):
    payments: List[PaymentResponse]


class DepositRequest(BaseModel):
    """Request body for POST /v1/shops/{shop_id}/customers/{customer_id}/wallet/deposits"""

    amount_cents: int = Field(..., gt=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    reference: Optional[str] = None
    description: Optional[str] = None
    apply_to_outstanding: bool = False


class AdjustmentRequest(BaseModel):
    amount_cents: int = Field(..., description="Signed; negative debits the wallet")
    reason: str = Field(..., min_length=1)


class RefundRequest(BaseModel):
    """Request body for POST /v1/shops/{shop_id}/customers/{customer_id}/wallet/refunds"""

    amount_cents: int = Field(..., gt=0)
    reason: str = Field(..., min_length=1)
    purchase_id: Optional[uuid.UUID] = None
    reference: Optional[str] = None


class WalletEntrySchema(BaseModel):
    entry_id: int
    type: str
    amount_cents: int
    balance_before_cents: int
    balance_after_cents: int
    status: str
    purchase_id: Optional[str] = None
    payment_method: Optional[str] = None
    reference: Optional[str] = None
    description: Optional[str] = None


class DepositResponse(BaseModel):
    customer_id: str
    wallet_balance_cents: int
    entry: WalletEntrySchema
    applied_payment_ids: List[str] = []


class WalletHistoryResponse(BaseModel):
    customer_id: str
    wallet_balance_cents: int
    transactions: List[WalletEntrySchema]


class WalletVerifyResponse(BaseModel):
    customer_id: str
    ledger_balance_cents: int
    consistent: bool = True


class AgingRowSchema(BaseModel):
    customer_id: str
    customer_name: str
    current_cents: int
    days_31_to_60_cents: int
    days_61_to_90_cents: int
    over_90_cents: int
    total_outstanding_cents: int
    oldest_due_date: Optional[date] = None


class AgingReportResponse(BaseModel):
    as_of: date
    total_outstanding_cents: int
    customers: List[AgingRowSchema]


class BadDebtItemSchema(BaseModel):
    purchase_id: str
    purchase_number: str
    customer_id: str
    customer_name: str
    outstanding_cents: int
    days_overdue: int
    payment_count: int
    risk_score: int
    late_fee_cents: int


class BadDebtReportResponse(BaseModel):
    as_of: date
    total_at_risk_cents: int
    high_risk_count: int
    medium_risk_count: int
    low_risk_count: int
    write_off_candidates: int
    escalation_required: int
    payment_plan_eligible: int
    items: List[BadDebtItemSchema]

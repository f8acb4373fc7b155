"""Wallet ledger - append-only transaction log plus cached signed balance per customer"""

import uuid
from typing import List, Optional
from sqlalchemy.orm import Session

from bnpl_ledger.domain.exceptions import ConflictError, IntegrityFault, NotFoundError, ValidationError
from bnpl_ledger.domain.models import WalletTransactionType
from bnpl_ledger.infrastructure.database.models import Customer, WalletTransaction
from bnpl_ledger.infrastructure.database.repositories import (
    CustomerRepository,
    PurchaseRepository,
    WalletRepository,
)
from bnpl_ledger.infrastructure.observability.logging import log_integrity_fault
from bnpl_ledger.infrastructure.observability.metrics import integrity_fault_counter


def _require_positive(amount_cents: int) -> None:
    if amount_cents <= 0:
        raise ValidationError("Amount must be greater than zero")


class WalletLedger:
    """
    Posts wallet entries inside the caller's transaction.

    Every posting locks the customer row, appends a ledger row and moves the
    cached balance in the same flush; nothing here commits.
    """

    def __init__(self, db: Session):
        self.db = db
        self.customers = CustomerRepository(db)
        self.entries = WalletRepository(db)

    def _post(
        self,
        customer_id: uuid.UUID,
        shop_id: uuid.UUID,
        entry_type: WalletTransactionType,
        signed_amount_cents: int,
        purchase_id: uuid.UUID | None = None,
        payment_id: uuid.UUID | None = None,
        payment_method: str | None = None,
        reference: str | None = None,
        description: str | None = None,
        actor_id: str | None = None,
    ) -> WalletTransaction:
        customer = self.customers.lock(customer_id)
        before = customer.wallet_balance_cents
        after = before + signed_amount_cents

        entry = self.entries.append(
            WalletTransaction(
                customer_id=customer_id,
                shop_id=shop_id,
                purchase_id=purchase_id,
                payment_id=payment_id,
                type=entry_type.value,
                amount_cents=signed_amount_cents,
                balance_before_cents=before,
                balance_after_cents=after,
                status="CONFIRMED",
                payment_method=payment_method,
                reference=reference,
                description=description,
                created_by=actor_id,
            )
        )
        customer.wallet_balance_cents = after
        self.db.flush()
        return entry

    def deposit(
        self,
        customer_id: uuid.UUID,
        shop_id: uuid.UUID,
        amount_cents: int,
        payment_method: str | None = None,
        reference: str | None = None,
        description: str | None = None,
        actor_id: str | None = None,
    ) -> WalletTransaction:
        """Prepaid funds: balance_after = balance_before + amount"""
        _require_positive(amount_cents)
        return self._post(
            customer_id,
            shop_id,
            WalletTransactionType.DEPOSIT,
            amount_cents,
            payment_method=payment_method,
            reference=reference,
            description=description or "Wallet deposit",
            actor_id=actor_id,
        )

    def debit_for_debt(
        self,
        customer_id: uuid.UUID,
        shop_id: uuid.UUID,
        amount_cents: int,
        purchase_id: uuid.UUID,
        reference: str | None = None,
        actor_id: str | None = None,
    ) -> WalletTransaction:
        """Financed balance posted as debt when a LAYAWAY/CREDIT purchase is created"""
        _require_positive(amount_cents)
        return self._post(
            customer_id,
            shop_id,
            WalletTransactionType.PURCHASE,
            -amount_cents,
            purchase_id=purchase_id,
            reference=reference,
            description="Financed balance",
            actor_id=actor_id,
        )

    def credit_for_payment(
        self,
        customer_id: uuid.UUID,
        shop_id: uuid.UUID,
        amount_cents: int,
        purchase_id: uuid.UUID,
        payment_id: uuid.UUID | None = None,
        payment_method: str | None = None,
        reference: str | None = None,
        actor_id: str | None = None,
    ) -> WalletTransaction:
        """Confirmed payment reduces the posted debt"""
        _require_positive(amount_cents)
        return self._post(
            customer_id,
            shop_id,
            WalletTransactionType.DEPOSIT,
            amount_cents,
            purchase_id=purchase_id,
            payment_id=payment_id,
            payment_method=payment_method,
            reference=reference,
            description="Payment confirmed",
            actor_id=actor_id,
        )

    def apply_wallet_to_purchase(
        self,
        customer_id: uuid.UUID,
        shop_id: uuid.UUID,
        amount_cents: int,
        purchase_id: uuid.UUID | None = None,
        payment_id: uuid.UUID | None = None,
        actor_id: str | None = None,
    ) -> WalletTransaction:
        """Spend wallet balance on a sale; the amount may not exceed the current balance"""
        _require_positive(amount_cents)
        customer = self.customers.lock(customer_id)
        if amount_cents > customer.wallet_balance_cents:
            raise ConflictError(
                f"Insufficient wallet balance: {customer.wallet_balance_cents} available, {amount_cents} requested"
            )
        return self._post(
            customer_id,
            shop_id,
            WalletTransactionType.PURCHASE,
            -amount_cents,
            purchase_id=purchase_id,
            payment_id=payment_id,
            payment_method="WALLET",
            description="Wallet applied to purchase",
            actor_id=actor_id,
        )

    def draw_prepaid_credit(
        self,
        customer_id: uuid.UUID,
        shop_id: uuid.UUID,
        amount_cents: int,
        purchase_id: uuid.UUID,
        payment_id: uuid.UUID | None = None,
        actor_id: str | None = None,
    ) -> WalletTransaction:
        """
        Pay an existing financed purchase from prepaid funds.

        The balance already nets the purchase's posted debt, so the funds
        available are the balance plus all open financed debt.
        """
        _require_positive(amount_cents)
        available = self.available_credit(customer_id)
        if amount_cents > available:
            raise ConflictError(
                f"Insufficient wallet balance: {available} available, {amount_cents} requested"
            )
        return self._post(
            customer_id,
            shop_id,
            WalletTransactionType.PURCHASE,
            -amount_cents,
            purchase_id=purchase_id,
            payment_id=payment_id,
            payment_method="WALLET",
            description="Wallet payment",
            actor_id=actor_id,
        )

    def refund(
        self,
        customer_id: uuid.UUID,
        shop_id: uuid.UUID,
        amount_cents: int,
        purchase_id: uuid.UUID | None = None,
        reference: str | None = None,
        description: str | None = None,
        actor_id: str | None = None,
    ) -> WalletTransaction:
        _require_positive(amount_cents)
        return self._post(
            customer_id,
            shop_id,
            WalletTransactionType.REFUND,
            amount_cents,
            purchase_id=purchase_id,
            reference=reference,
            description=description or "Refund",
            actor_id=actor_id,
        )

    def adjust(
        self,
        customer_id: uuid.UUID,
        shop_id: uuid.UUID,
        signed_amount_cents: int,
        description: str,
        purchase_id: uuid.UUID | None = None,
        actor_id: str | None = None,
    ) -> WalletTransaction:
        """Signed correction; positive credits, negative debits"""
        if signed_amount_cents == 0:
            raise ValidationError("Adjustment amount cannot be zero")
        if not description or not description.strip():
            raise ValidationError("Adjustment reason is required")
        return self._post(
            customer_id,
            shop_id,
            WalletTransactionType.ADJUSTMENT,
            signed_amount_cents,
            purchase_id=purchase_id,
            description=description.strip(),
            actor_id=actor_id,
        )

    def available_credit(self, customer_id: uuid.UUID) -> int:
        """Prepaid funds: signed balance plus open financed debt already posted"""
        customer = self.customers.lock(customer_id)
        return customer.wallet_balance_cents + PurchaseRepository(self.db).financed_debt_for_customer(customer_id)

    def history(self, customer_id: uuid.UUID, limit: int | None = None) -> List[WalletTransaction]:
        return self.entries.list_for_customer(customer_id, limit=limit)

    def verify(self, customer: Customer) -> int:
        """
        Re-derive the balance from the ledger.

        Checks every row's before/after against its signed amount, that rows
        chain (each before equals the previous after, starting at 0), and that
        the cached balance equals the latest row's after.

        Raises:
            IntegrityFault: On any mismatch
        """
        expected = 0
        for entry in self.entries.list_for_customer(customer.id):
            if entry.balance_before_cents != expected:
                self._fault(customer, f"entry {entry.id} starts at {entry.balance_before_cents}, expected {expected}")
            if entry.balance_after_cents - entry.balance_before_cents != entry.amount_cents:
                self._fault(customer, f"entry {entry.id} does not add up")
            expected = entry.balance_after_cents

        if customer.wallet_balance_cents != expected:
            self._fault(customer, f"cached balance {customer.wallet_balance_cents} != ledger balance {expected}")

        return expected

    def _fault(self, customer: Customer, message: str) -> None:
        integrity_fault_counter.labels(kind="wallet").inc()
        log_integrity_fault("wallet", message, customer_id=str(customer.id))
        raise IntegrityFault(f"Wallet ledger mismatch: {message}")


def get_customer(db: Session, customer_id: uuid.UUID, shop_id: uuid.UUID) -> Customer:
    customer = CustomerRepository(db).get_in_shop(customer_id, shop_id)
    if customer is None:
        raise NotFoundError("Customer not found")
    return customer


def latest_balance(db: Session, customer_id: uuid.UUID) -> Optional[int]:
    entry = WalletRepository(db).latest(customer_id)
    return entry.balance_after_cents if entry else None

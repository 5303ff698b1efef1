# File: autopark/application/payment_service.py
"""
Payment recording for invoices and overdue charges
"""

from typing import Callable, Union
from datetime import datetime
from decimal import Decimal, InvalidOperation
import logging

from ..domain.exceptions import BillingError, NotFoundError, InvalidArgumentError
from ..domain.models import Invoice, OverdueCharge, ZERO, to_decimal, round_money
from ..infrastructure.repositories import InvoiceStore, OverdueChargeStore
from .dtos import OperationResult


Amount = Union[int, float, Decimal, str]


def _positive_amount(amount: Amount) -> Decimal:
    try:
        value = round_money(to_decimal(amount))
    except (InvalidOperation, ValueError):
        raise InvalidArgumentError(f"Not a valid amount: {amount!r}")
    if value <= ZERO:
        raise InvalidArgumentError(f"Payment amount must be positive, got: {value}")
    return value


class PaymentService:
    """Applies payments to stored invoices and overdue charges"""

    def __init__(
        self,
        invoice_store: InvoiceStore,
        charge_store: OverdueChargeStore,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.invoice_store = invoice_store
        self.charge_store = charge_store
        self.clock = clock
        self.logger = logging.getLogger(self.__class__.__name__)

    def record_invoice_payment(self, invoice_id: str, amount: Amount) -> OperationResult[Invoice]:
        """Add a payment to an invoice; PARTIAL until the total is covered"""
        try:
            value = _positive_amount(amount)
            invoice = self.invoice_store.get_invoice(invoice_id)
            if invoice is None:
                raise NotFoundError("Invoice", invoice_id)

            invoice.record_payment(value, self.clock())
            saved = self.invoice_store.upsert_invoice(invoice)
        except BillingError as e:
            self.logger.error(f"Error recording payment on invoice {invoice_id}: {e}")
            return OperationResult.from_error(e)

        self.logger.info(
            f"Invoice {saved.invoice_number} paid {value}, "
            f"now {saved.payment_status.value} ({saved.amount_paid}/{saved.total_amount})"
        )
        return OperationResult.ok(saved)

    def record_overdue_payment(self, charge_id: str, amount: Amount) -> OperationResult[OverdueCharge]:
        """Add a payment to an overdue charge; PAID once totalDueAmount is covered"""
        try:
            value = _positive_amount(amount)
            charge = self.charge_store.get_charge(charge_id)
            if charge is None:
                raise NotFoundError("Overdue charge", charge_id)

            charge.record_payment(value, self.clock())
            saved = self.charge_store.update_charge(charge)
        except BillingError as e:
            self.logger.error(f"Error recording payment on charge {charge_id}: {e}")
            return OperationResult.from_error(e)

        self.logger.info(f"Overdue charge {saved.id} paid {value}, now {saved.payment_status.value}")
        return OperationResult.ok(saved)

    def outstanding_balance(self, owner_id: str) -> OperationResult[Decimal]:
        """Sum of what is still owed on the owner's pending invoices"""
        try:
            invoices = self.invoice_store.list_pending_invoices(owner_id)
        except BillingError as e:
            self.logger.error(f"Error reading invoices of {owner_id}: {e}", exc_info=True)
            return OperationResult.from_error(e)

        balance = sum((invoice.outstanding_amount for invoice in invoices), ZERO)
        return OperationResult.ok(round_money(balance))

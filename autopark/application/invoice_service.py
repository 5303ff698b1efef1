# File: autopark/application/invoice_service.py
"""
Monthly Invoice Generation

Use Case: Month-end billing
1. Work out the calendar month's boundaries
2. Pull the owner's transactions that entered during the month
3. Total the completed ones into an invoice snapshot
4. Create the invoice, or overwrite the month's existing invoice in place

Transactions are attributed to the month they entered in, even when the exit
falls in the following month.

Regenerating an invoice resets paymentStatus (PENDING when anything was
billed, PAID when nothing was) and amountPaid, whatever payments were recorded
against it before. That is how the mobile app behaves today and it is kept
until product decides otherwise.
"""

from typing import Optional, Tuple, Callable, List
from datetime import datetime, timedelta
from decimal import Decimal
import calendar
import logging

from ..domain.exceptions import BillingError, InvalidArgumentError
from ..domain.models import (
    Invoice, ParkingTransaction, User, UserRole, InvoicePaymentStatus,
    ZERO, round_money
)
from ..infrastructure.repositories import TransactionStore, InvoiceStore, UserDirectory
from .dtos import OperationResult, BatchResult, UserFailure, ErrorKind, error_kind_for


DEFAULT_DUE_PERIOD = timedelta(days=15)
MINUTES_PER_HOUR = Decimal('60')


def month_bounds(month: int, year: int) -> Tuple[datetime, datetime, datetime]:
    """
    Returns (first instant, 23:59:59 of the last day, first instant of next month)
    """
    if not 1 <= month <= 12:
        raise InvalidArgumentError(f"Month must be between 1 and 12, got: {month}")

    from_date = datetime(year, month, 1)
    last_day = calendar.monthrange(year, month)[1]
    to_date = datetime(year, month, last_day, 23, 59, 59)
    if month == 12:
        next_month = datetime(year + 1, 1, 1)
    else:
        next_month = datetime(year, month + 1, 1)
    return from_date, to_date, next_month


class InvoiceGenerator:
    """
    Application service that builds monthly invoices from the transaction ledger
    """

    def __init__(
        self,
        transaction_store: TransactionStore,
        invoice_store: InvoiceStore,
        user_directory: UserDirectory,
        due_period: timedelta = DEFAULT_DUE_PERIOD,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.transaction_store = transaction_store
        self.invoice_store = invoice_store
        self.user_directory = user_directory
        self.due_period = due_period
        self.clock = clock
        self.logger = logging.getLogger(self.__class__.__name__)

    def generate_monthly_invoice(
        self,
        owner_id: str,
        month: int,
        year: int,
        user: Optional[User] = None
    ) -> OperationResult[Invoice]:
        """
        Create or refresh the owner's invoice for one month

        Args:
            user: the owner's record when the caller already has it; looked up
                  otherwise. A missing user only leaves the invoice number
                  without initials.
        """
        self.logger.info(f"Generating invoice for {owner_id} ({month:02d}/{year})")

        try:
            invoice = self._generate(owner_id, month, year, user)
        except BillingError as e:
            self.logger.error(f"Error generating invoice for {owner_id}: {e}", exc_info=True)
            return OperationResult.from_error(e)
        except Exception as e:
            self.logger.error(f"Unexpected error for {owner_id}: {e}", exc_info=True)
            return OperationResult.fail(ErrorKind.STORE_FAILURE, str(e))

        return OperationResult.ok(invoice)

    def generate_monthly_invoices(self, month: int, year: int) -> BatchResult[Invoice]:
        """
        Generate one invoice per driver; a failing driver never stops the batch
        """
        self.logger.info(f"Generating monthly invoices for {month:02d}/{year}")
        result: BatchResult[Invoice] = BatchResult()

        try:
            drivers = self.user_directory.list_users_by_role(UserRole.DRIVER)
        except BillingError as e:
            self.logger.error(f"Could not list drivers: {e}", exc_info=True)
            result.error = error_kind_for(e)
            result.message = str(e)
            return result

        for driver in drivers:
            try:
                invoice = self._generate(driver.id, month, year, driver)
            except BillingError as e:
                self.logger.error(f"Invoice generation failed for {driver.id}: {e}")
                result.failures.append(UserFailure(driver.id, error_kind_for(e), str(e)))
                continue
            except Exception as e:
                self.logger.error(f"Unexpected error for {driver.id}: {e}", exc_info=True)
                result.failures.append(UserFailure(driver.id, ErrorKind.STORE_FAILURE, str(e)))
                continue

            result.success_count += 1
            result.items.append(invoice)

        self.logger.info(
            f"Generated {result.success_count} invoices, {result.failure_count} failures"
        )
        return result

    def _generate(self, owner_id: str, month: int, year: int, user: Optional[User]) -> Invoice:
        if user is None:
            user = self.user_directory.get_user(owner_id)
            if user is None:
                self.logger.warning(f"User {owner_id} not found, invoice number has no initials")

        existing = self.invoice_store.get_monthly_invoice(owner_id, month, year)
        invoice = self.calculate_invoice(owner_id, month, year, user)

        if existing is not None:
            self.logger.debug(f"Updating existing invoice {existing.id}")
            invoice.id = existing.id

        return self.invoice_store.upsert_invoice(invoice)

    def calculate_invoice(
        self,
        owner_id: str,
        month: int,
        year: int,
        user: Optional[User] = None
    ) -> Invoice:
        """Compute a fresh (unsaved) invoice from the month's transactions"""
        from_date, to_date, next_month = month_bounds(month, year)
        transactions = self.transaction_store.list_transactions(owner_id, from_date, next_month)

        total_charges, total_minutes, completed = self._totals(transactions)

        return Invoice(
            owner_id=owner_id,
            month=month,
            year=year,
            invoice_number=self.invoice_number(month, year, user),
            from_date=from_date,
            to_date=to_date,
            total_transactions=len(transactions),
            total_hours=round_money(Decimal(total_minutes) / MINUTES_PER_HOUR),
            total_charges=total_charges,
            total_amount=total_charges,
            payment_status=(
                InvoicePaymentStatus.PENDING if completed > 0 else InvoicePaymentStatus.PAID
            ),
            due_date=to_date + self.due_period,
            amount_paid=round_money(ZERO),
            transaction_ids=[tx.id for tx in transactions],
        )

    @staticmethod
    def _totals(transactions: List[ParkingTransaction]) -> Tuple[Decimal, int, int]:
        total_charges = ZERO
        total_minutes = 0
        completed = 0
        for tx in transactions:
            if tx.is_completed:
                total_charges += tx.charge_amount
                total_minutes += tx.duration_minutes
                completed += 1
        return round_money(total_charges), total_minutes, completed

    def invoice_number(self, month: int, year: int, user: Optional[User]) -> str:
        """INV-<initials>-<MM><YYYY>-<last three digits of the clock in ms>"""
        initials = user.initials if user else ""
        millis = int(self.clock().timestamp() * 1000)
        return f"INV-{initials}-{month:02d}{year}-{millis % 1000:03d}"

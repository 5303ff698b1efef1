# File: autopark/application/overdue_service.py
"""
Overdue Invoice Processing

Use Case: Daily overdue sweep
1. For every driver, load invoices still PENDING
2. Keep those past their due date with an unpaid balance
3. Raise one OverdueCharge per invoice with a linear late fee

A charge is created at most once per invoice. Later sweeps leave an existing
charge alone, so its overdueDays and lateFeeAmount stay as first computed.

The charge's totalAmount is the invoice amount plus the late fee, while
totalDueAmount is the invoice amount minus what was already paid and leaves
the fee out. Both formulas match the records the mobile app already holds.
"""

from typing import Optional, List, Callable
from datetime import datetime, timedelta
from decimal import Decimal
import logging

from ..domain.exceptions import BillingError
from ..domain.models import (
    Invoice, OverdueCharge, UserRole, ChargePaymentStatus, to_decimal, round_money
)
from ..domain.pricing import ChargeCalculator
from ..infrastructure.repositories import InvoiceStore, OverdueChargeStore, UserDirectory
from .dtos import OperationResult, BatchResult, UserFailure, ErrorKind, error_kind_for


DEFAULT_LATE_FEE_PERCENTAGE = Decimal('10.0')
ONE_DAY = timedelta(days=1)


class OverdueProcessor:
    """
    Application service that turns overdue invoices into late-fee charges
    """

    def __init__(
        self,
        invoice_store: InvoiceStore,
        charge_store: OverdueChargeStore,
        user_directory: UserDirectory,
        late_fee_percentage: Decimal = DEFAULT_LATE_FEE_PERCENTAGE,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.invoice_store = invoice_store
        self.charge_store = charge_store
        self.user_directory = user_directory
        self.late_fee_percentage = to_decimal(late_fee_percentage)
        self.clock = clock
        self.logger = logging.getLogger(self.__class__.__name__)

    @staticmethod
    def overdue_days(invoice: Invoice, now: datetime) -> int:
        """Whole days past the due date, 0 when not overdue"""
        if invoice.due_date is None or now <= invoice.due_date:
            return 0
        return (now - invoice.due_date) // ONE_DAY

    def build_overdue_charge(self, invoice: Invoice, now: datetime) -> Optional[OverdueCharge]:
        """
        Compute the late-fee charge for an invoice, or None when it is not overdue
        """
        if not invoice.is_overdue(now):
            return None

        days = self.overdue_days(invoice, now)
        if days <= 0:
            return None

        original_amount = invoice.total_amount
        late_fee = ChargeCalculator.calculate_late_fee(
            original_amount, days, self.late_fee_percentage
        )

        return OverdueCharge(
            owner_id=invoice.owner_id,
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            original_amount=original_amount,
            late_fee_percentage=self.late_fee_percentage,
            late_fee_amount=late_fee,
            total_amount=round_money(original_amount + late_fee),
            total_due_amount=round_money(original_amount - invoice.amount_paid),
            overdue_days=days,
            due_date=invoice.due_date,
            payment_status=ChargePaymentStatus.PENDING,
        )

    def process_user_overdue_invoices(
        self,
        owner_id: str,
        now: Optional[datetime] = None
    ) -> OperationResult[List[OverdueCharge]]:
        """Raise charges for one owner's overdue invoices"""
        try:
            charges = self._process_user(owner_id, now or self.clock())
        except BillingError as e:
            self.logger.error(f"Overdue processing failed for {owner_id}: {e}", exc_info=True)
            return OperationResult.from_error(e)
        except Exception as e:
            self.logger.error(f"Unexpected error for {owner_id}: {e}", exc_info=True)
            return OperationResult.fail(ErrorKind.STORE_FAILURE, str(e))
        return OperationResult.ok(charges)

    def process_overdue_invoices(self) -> BatchResult[OverdueCharge]:
        """
        Sweep every driver; success_count is the number of drivers processed
        """
        now = self.clock()
        self.logger.info(f"Processing overdue invoices as of {now.isoformat()}")
        result: BatchResult[OverdueCharge] = BatchResult()

        try:
            drivers = self.user_directory.list_users_by_role(UserRole.DRIVER)
        except BillingError as e:
            self.logger.error(f"Could not list drivers: {e}", exc_info=True)
            result.error = error_kind_for(e)
            result.message = str(e)
            return result

        for driver in drivers:
            try:
                charges = self._process_user(driver.id, now)
            except BillingError as e:
                self.logger.error(f"Overdue processing failed for {driver.id}: {e}")
                result.failures.append(UserFailure(driver.id, error_kind_for(e), str(e)))
                continue
            except Exception as e:
                self.logger.error(f"Unexpected error for {driver.id}: {e}", exc_info=True)
                result.failures.append(UserFailure(driver.id, ErrorKind.STORE_FAILURE, str(e)))
                continue

            result.success_count += 1
            result.items.extend(charges)

        self.logger.info(
            f"Processed {result.success_count} drivers, raised {len(result.items)} "
            f"overdue charges, {result.failure_count} failures"
        )
        return result

    def _process_user(self, owner_id: str, now: datetime) -> List[OverdueCharge]:
        created: List[OverdueCharge] = []

        for invoice in self.invoice_store.list_pending_invoices(owner_id):
            charge = self.build_overdue_charge(invoice, now)
            if charge is None:
                continue

            if self.charge_store.list_charges_by_invoice(invoice.id):
                self.logger.debug(f"Invoice {invoice.invoice_number} already has an overdue charge")
                continue

            created.append(self.charge_store.insert_charge(charge))
            self.logger.info(
                f"Overdue charge for {invoice.invoice_number}: {charge.overdue_days} days, "
                f"late fee {charge.late_fee_amount}"
            )

        return created

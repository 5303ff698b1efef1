#!/usr/bin/env python3
"""
Overdue Processing Unit Tests
"""

import unittest
from unittest.mock import Mock, MagicMock
from datetime import datetime, timedelta
from decimal import Decimal

from autopark.application.dtos import ErrorKind
from autopark.application.overdue_service import OverdueProcessor
from autopark.domain.exceptions import StoreError
from autopark.domain.models import (
    Invoice, InvoicePaymentStatus, ChargePaymentStatus, User, UserRole
)
from autopark.infrastructure.mongo_repositories import MongoInvoiceStore
from autopark.infrastructure.repositories import (
    InMemoryInvoiceStore, InMemoryOverdueChargeStore, InMemoryUserDirectory
)


NOW = datetime(2026, 7, 1, 12, 0)


def make_invoice(owner_id="u1", month=5, due_date=None, total="100", paid="0", **overrides):
    values = dict(
        owner_id=owner_id,
        month=month,
        year=2026,
        invoice_number=f"INV-XX-{month:02d}2026-001",
        total_charges=Decimal(total),
        total_amount=Decimal(total),
        amount_paid=Decimal(paid),
        due_date=due_date or NOW - timedelta(days=3),
        payment_status=InvoicePaymentStatus.PENDING,
    )
    values.update(overrides)
    return Invoice(**values)


class OverdueTestBase(unittest.TestCase):

    def setUp(self):
        self.now = NOW
        self.invoices = InMemoryInvoiceStore()
        self.charges = InMemoryOverdueChargeStore()
        self.users = InMemoryUserDirectory([
            User(id="u1", name="Jane Doe", role=UserRole.DRIVER),
            User(id="u2", name="John Roe", role=UserRole.DRIVER),
        ])
        self.processor = self.make_processor()

    def make_processor(self, invoices=None, late_fee_percentage=Decimal("10")):
        return OverdueProcessor(
            invoices or self.invoices,
            self.charges,
            self.users,
            late_fee_percentage=late_fee_percentage,
            clock=lambda: self.now
        )


# ============================================================================
# CHARGE COMPUTATION
# ============================================================================

class TestOverdueCharge(OverdueTestBase):

    def test_three_days_overdue(self):
        invoice = self.invoices.upsert_invoice(make_invoice())

        result = self.processor.process_user_overdue_invoices("u1")

        self.assertTrue(result.success)
        self.assertEqual(len(result.value), 1)
        charge = result.value[0]
        self.assertEqual(charge.overdue_days, 3)
        self.assertEqual(charge.late_fee_amount, Decimal("30.00"))
        self.assertEqual(charge.total_amount, Decimal("130.00"))
        self.assertEqual(charge.original_amount, Decimal("100"))
        self.assertEqual(charge.invoice_id, invoice.id)
        self.assertEqual(charge.invoice_number, invoice.invoice_number)
        self.assertEqual(charge.due_date, invoice.due_date)
        self.assertEqual(charge.payment_status, ChargePaymentStatus.PENDING)
        self.assertTrue(charge.id)

    def test_total_due_excludes_late_fee_and_deducts_payments(self):
        """Pinned: totalAmount adds the fee, totalDueAmount subtracts what was paid"""
        invoice = make_invoice(paid="40")
        charge = self.processor.build_overdue_charge(invoice, NOW)

        self.assertEqual(charge.late_fee_amount, Decimal("30.00"))
        self.assertEqual(charge.total_amount, Decimal("130.00"))
        self.assertEqual(charge.total_due_amount, Decimal("60.00"))

    def test_configured_percentage(self):
        processor = self.make_processor(late_fee_percentage=Decimal("12.5"))
        charge = processor.build_overdue_charge(make_invoice(), NOW)

        self.assertEqual(charge.late_fee_percentage, Decimal("12.5"))
        self.assertEqual(charge.late_fee_amount, Decimal("37.50"))

    def test_partial_days_are_floored(self):
        invoice = make_invoice(due_date=NOW - timedelta(days=2, hours=23))
        self.assertEqual(OverdueProcessor.overdue_days(invoice, NOW), 2)

    def test_not_yet_overdue(self):
        cases = [
            make_invoice(due_date=NOW + timedelta(days=1)),
            make_invoice(due_date=NOW),
            # past due but less than a full day
            make_invoice(due_date=NOW - timedelta(hours=12)),
            # fully paid
            make_invoice(paid="100"),
        ]
        for invoice in cases:
            with self.subTest(due_date=invoice.due_date, paid=invoice.amount_paid):
                self.assertIsNone(self.processor.build_overdue_charge(invoice, NOW))

    def test_invoice_without_due_date(self):
        invoice = make_invoice()
        invoice.due_date = None
        self.assertIsNone(self.processor.build_overdue_charge(invoice, NOW))


# ============================================================================
# SWEEPS
# ============================================================================

class TestProcessOverdueInvoices(OverdueTestBase):

    def test_only_pending_invoices_considered(self):
        self.invoices.upsert_invoice(make_invoice(month=4))
        self.invoices.upsert_invoice(
            make_invoice(month=5, payment_status=InvoicePaymentStatus.PAID)
        )

        result = self.processor.process_user_overdue_invoices("u1")

        self.assertEqual([charge.invoice_number for charge in result.value], ["INV-XX-042026-001"])

    def test_second_run_creates_no_duplicate(self):
        invoice = self.invoices.upsert_invoice(make_invoice())
        self.processor.process_user_overdue_invoices("u1")

        self.now = NOW + timedelta(days=4)
        result = self.processor.process_user_overdue_invoices("u1")

        self.assertEqual(result.value, [])
        charges = self.charges.list_charges_by_invoice(invoice.id)
        self.assertEqual(len(charges), 1)
        # the existing charge is left as first computed
        self.assertEqual(charges[0].overdue_days, 3)
        self.assertEqual(charges[0].late_fee_amount, Decimal("30.00"))

    def test_batch_over_drivers(self):
        self.invoices.upsert_invoice(make_invoice(owner_id="u1"))
        self.invoices.upsert_invoice(make_invoice(owner_id="u2", total="50"))

        result = self.processor.process_overdue_invoices()

        self.assertEqual(result.success_count, 2)
        self.assertEqual(result.failure_count, 0)
        self.assertEqual(
            sorted(charge.total_amount for charge in result.items),
            [Decimal("65.00"), Decimal("130.00")]
        )

    def test_failing_driver_is_isolated(self):
        invoices = Mock(wraps=self.invoices)

        def list_pending(owner_id):
            if owner_id == "u2":
                raise StoreError("timeout")
            return self.invoices.list_pending_invoices(owner_id)

        invoices.list_pending_invoices.side_effect = list_pending
        self.invoices.upsert_invoice(make_invoice(owner_id="u1"))
        processor = self.make_processor(invoices=invoices)

        result = processor.process_overdue_invoices()

        self.assertEqual(result.success_count, 1)
        self.assertEqual(len(result.items), 1)
        self.assertEqual(result.failures[0].user_id, "u2")
        self.assertEqual(result.failures[0].error, ErrorKind.STORE_FAILURE)

    def test_single_user_store_failure(self):
        invoices = Mock()
        invoices.list_pending_invoices.side_effect = StoreError("timeout")
        processor = self.make_processor(invoices=invoices)

        result = processor.process_user_overdue_invoices("u1")

        self.assertFalse(result.success)
        self.assertEqual(result.error, ErrorKind.STORE_FAILURE)

    def test_single_user_unexpected_error(self):
        invoices = Mock()
        invoices.list_pending_invoices.side_effect = ValueError("Month must be between 1 and 12, got: 13")
        processor = self.make_processor(invoices=invoices)

        with self.assertLogs("OverdueProcessor", level="ERROR"):
            result = processor.process_user_overdue_invoices("u1")

        self.assertFalse(result.success)
        self.assertEqual(result.error, ErrorKind.STORE_FAILURE)

    def test_unreadable_stored_invoice(self):
        database = MagicMock()
        database.__getitem__.return_value.find.return_value = [
            {"_id": "inv-1", "ownerId": "u1", "month": 13, "year": 2026, "paymentStatus": "PENDING"}
        ]
        processor = self.make_processor(invoices=MongoInvoiceStore(database))

        result = processor.process_user_overdue_invoices("u1")

        self.assertFalse(result.success)
        self.assertEqual(result.error, ErrorKind.STORE_FAILURE)
        self.assertEqual(self.charges.count(), 0)

    def test_driver_listing_failure(self):
        self.users = Mock()
        self.users.list_users_by_role.side_effect = StoreError("users unavailable")

        result = self.make_processor().process_overdue_invoices()

        self.assertEqual(result.error, ErrorKind.STORE_FAILURE)
        self.assertEqual(result.total_users, 0)


if __name__ == '__main__':
    unittest.main()

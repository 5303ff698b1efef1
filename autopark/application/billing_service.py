# File: autopark/application/billing_service.py
"""
Billing Service (Facade Pattern)

Single entry point used by the scheduled jobs and the CLI. It delegates to
the pricing engine, the QR codec, the invoice generator and the overdue
processor, which remain usable on their own.
"""

from typing import Optional, Union
from datetime import datetime
from decimal import Decimal
import logging

from ..domain.models import Invoice, OverdueCharge, RateProfile
from ..domain.pricing import ChargeCalculator
from ..domain.qr_security import QRSecurityCodec, QRToken, QRType, ValidationResult
from .dtos import OperationResult, BatchResult
from .invoice_service import InvoiceGenerator
from .overdue_service import OverdueProcessor


class BillingService:

    def __init__(
        self,
        calculator: ChargeCalculator,
        codec: QRSecurityCodec,
        invoice_generator: InvoiceGenerator,
        overdue_processor: OverdueProcessor
    ):
        self.calculator = calculator
        self.codec = codec
        self.invoice_generator = invoice_generator
        self.overdue_processor = overdue_processor
        self.logger = logging.getLogger(self.__class__.__name__)

    # Invoicing

    def generate_user_monthly_invoice(
        self,
        owner_id: str,
        month: int,
        year: int
    ) -> OperationResult[Invoice]:
        return self.invoice_generator.generate_monthly_invoice(owner_id, month, year)

    def generate_monthly_invoices(self, month: int, year: int) -> BatchResult[Invoice]:
        return self.invoice_generator.generate_monthly_invoices(month, year)

    def process_overdue_invoices(self) -> BatchResult[OverdueCharge]:
        return self.overdue_processor.process_overdue_invoices()

    # Pricing

    def calculate_charge(
        self,
        entry_time: datetime,
        exit_time: datetime,
        rate: Optional[RateProfile],
        is_vip: bool = False
    ) -> Decimal:
        return self.calculator.calculate_charge(entry_time, exit_time, rate, is_vip)

    def estimate_charge_for_duration(
        self,
        hours: Union[int, float, Decimal],
        rate: Optional[RateProfile],
        is_vip: bool = False
    ) -> Decimal:
        return self.calculator.estimate_charge_for_duration(hours, rate, is_vip)

    # QR tokens

    def create_token(
        self,
        user_id: str,
        vehicle_number: str,
        qr_type: Union[QRType, str] = QRType.ENTRY
    ) -> QRToken:
        return self.codec.create_token(user_id, vehicle_number, qr_type)

    def validate_token(self, token: Union[QRToken, str]) -> ValidationResult:
        return self.codec.validate(token)

# File: autopark/infrastructure/mappers.py
"""
Typed mapping between domain entities and store documents

Documents keep the field names the mobile app writes (camelCase, instants as
epoch milliseconds, amounts as floating-point numbers). Every reader fills
explicit defaults for missing or null fields instead of failing on them.
"""

from typing import Optional, Dict, Any, Type, TypeVar
from datetime import datetime
from decimal import Decimal
from enum import Enum

from ..domain.models import (
    RateProfile, ParkingTransaction, Invoice, OverdueCharge, User,
    RateType, TransactionStatus, PaymentStatus, InvoicePaymentStatus,
    ChargePaymentStatus, UserRole,
    to_decimal, round_money
)


E = TypeVar('E', bound=Enum)


def to_millis(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    return int(value.timestamp() * 1000)


def from_millis(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromtimestamp(int(value) / 1000)


def _money(value: Any) -> Decimal:
    return round_money(value or 0)


def _amount(value: Decimal) -> float:
    return float(value)


def _enum(enum_class: Type[E], value: Any, default: E) -> E:
    """Read an enum value, falling back to a default for blanks and unknowns"""
    if value is None or value == "":
        return default
    try:
        return enum_class(value)
    except ValueError:
        return default


def _doc_id(data: Dict[str, Any]) -> str:
    raw = data.get("id") or data.get("_id") or ""
    return str(raw)


class DocumentMapper:
    """Maps entities to and from store documents"""

    # ------------------------------------------------------------------
    # Rate profiles
    # ------------------------------------------------------------------

    @staticmethod
    def rate_to_document(rate: RateProfile) -> Dict[str, Any]:
        return {
            "id": rate.id,
            "parkingLotId": rate.lot_id,
            "rateType": rate.rate_type.value,
            "pricePerHour": _amount(rate.price_per_hour),
            "pricePerDay": _amount(rate.price_per_day),
            "overnightPrice": _amount(rate.overnight_price),
            "minChargeAmount": _amount(rate.min_charge),
            "maxChargePerDay": _amount(rate.max_charge_per_day),
            "vipMultiplier": _amount(rate.vip_multiplier),
            "isActive": rate.active,
        }

    @staticmethod
    def rate_from_document(data: Dict[str, Any]) -> RateProfile:
        return RateProfile(
            id=_doc_id(data),
            lot_id=data.get("parkingLotId") or data.get("lotId") or "",
            rate_type=_enum(RateType, data.get("rateType"), RateType.NORMAL),
            price_per_hour=to_decimal(data.get("pricePerHour") or 0),
            price_per_day=to_decimal(data.get("pricePerDay") or 0),
            overnight_price=to_decimal(data.get("overnightPrice") or 0),
            min_charge=to_decimal(data.get("minChargeAmount", data.get("minCharge")) or 0),
            max_charge_per_day=to_decimal(data.get("maxChargePerDay") or 0),
            vip_multiplier=to_decimal(data.get("vipMultiplier") or 1),
            active=bool(data.get("isActive", data.get("active", True))),
        )

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @staticmethod
    def transaction_to_document(tx: ParkingTransaction) -> Dict[str, Any]:
        return {
            "id": tx.id,
            "parkingLotId": tx.lot_id,
            "vehicleId": tx.vehicle_id,
            "vehicleNumber": tx.vehicle_number,
            "ownerId": tx.owner_id,
            "entryTime": to_millis(tx.entry_time),
            "exitTime": to_millis(tx.exit_time),
            "duration": tx.duration_minutes,
            "rateType": tx.rate_type.value,
            "chargeAmount": _amount(tx.charge_amount),
            "status": tx.status.value,
            "paymentStatus": tx.payment_status.value,
        }

    @staticmethod
    def transaction_from_document(data: Dict[str, Any]) -> ParkingTransaction:
        return ParkingTransaction(
            id=_doc_id(data),
            lot_id=data.get("parkingLotId") or "",
            vehicle_id=data.get("vehicleId") or "",
            vehicle_number=data.get("vehicleNumber") or "",
            owner_id=data.get("ownerId") or "",
            entry_time=from_millis(data.get("entryTime") or 0),
            exit_time=from_millis(data.get("exitTime")),
            duration_minutes=int(data.get("duration") or 0),
            rate_type=_enum(RateType, data.get("rateType"), RateType.NORMAL),
            charge_amount=_money(data.get("chargeAmount")),
            status=_enum(TransactionStatus, data.get("status"), TransactionStatus.ACTIVE),
            payment_status=_enum(PaymentStatus, data.get("paymentStatus"), PaymentStatus.PENDING),
        )

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    @staticmethod
    def invoice_to_document(invoice: Invoice) -> Dict[str, Any]:
        return {
            "id": invoice.id,
            "ownerId": invoice.owner_id,
            "invoiceNumber": invoice.invoice_number,
            "month": invoice.month,
            "year": invoice.year,
            "fromDate": to_millis(invoice.from_date),
            "toDate": to_millis(invoice.to_date),
            "totalTransactions": invoice.total_transactions,
            "totalHours": _amount(invoice.total_hours),
            "totalCharges": _amount(invoice.total_charges),
            "totalAmount": _amount(invoice.total_amount),
            "paymentStatus": invoice.payment_status.value,
            "paymentDate": to_millis(invoice.payment_date),
            "dueDate": to_millis(invoice.due_date),
            "amountPaid": _amount(invoice.amount_paid),
            "transactionIds": list(invoice.transaction_ids),
        }

    @staticmethod
    def invoice_from_document(data: Dict[str, Any]) -> Invoice:
        return Invoice(
            id=_doc_id(data),
            owner_id=data.get("ownerId") or "",
            invoice_number=data.get("invoiceNumber") or "",
            month=int(data.get("month") or 1),
            year=int(data.get("year") or 0),
            from_date=from_millis(data.get("fromDate")),
            to_date=from_millis(data.get("toDate")),
            total_transactions=int(data.get("totalTransactions") or 0),
            total_hours=_money(data.get("totalHours")),
            total_charges=_money(data.get("totalCharges")),
            total_amount=_money(data.get("totalAmount")),
            payment_status=_enum(
                InvoicePaymentStatus, data.get("paymentStatus"), InvoicePaymentStatus.PENDING
            ),
            payment_date=from_millis(data.get("paymentDate")),
            due_date=from_millis(data.get("dueDate")),
            amount_paid=_money(data.get("amountPaid")),
            transaction_ids=[str(tx_id) for tx_id in data.get("transactionIds") or []],
        )

    # ------------------------------------------------------------------
    # Overdue charges
    # ------------------------------------------------------------------

    @staticmethod
    def charge_to_document(charge: OverdueCharge) -> Dict[str, Any]:
        return {
            "id": charge.id,
            "ownerId": charge.owner_id,
            "invoiceId": charge.invoice_id,
            "invoiceNumber": charge.invoice_number,
            "originalAmount": _amount(charge.original_amount),
            "lateFeePercentage": _amount(charge.late_fee_percentage),
            "lateFeeAmount": _amount(charge.late_fee_amount),
            "totalAmount": _amount(charge.total_amount),
            "totalDueAmount": _amount(charge.total_due_amount),
            "overdueDays": charge.overdue_days,
            "dueDate": to_millis(charge.due_date),
            "paymentStatus": charge.payment_status.value,
            "amountPaid": _amount(charge.amount_paid),
            "paymentDate": to_millis(charge.payment_date),
        }

    @staticmethod
    def charge_from_document(data: Dict[str, Any]) -> OverdueCharge:
        # older app builds wrote daysOverdue and COMPLETED for paid charges
        overdue_days = data.get("overdueDays", data.get("daysOverdue"))
        status = data.get("paymentStatus")
        if status == "COMPLETED":
            status = ChargePaymentStatus.PAID.value

        return OverdueCharge(
            id=_doc_id(data),
            owner_id=data.get("ownerId") or "",
            invoice_id=data.get("invoiceId") or "",
            invoice_number=data.get("invoiceNumber") or "",
            original_amount=_money(data.get("originalAmount")),
            late_fee_percentage=to_decimal(data.get("lateFeePercentage") or 0),
            late_fee_amount=_money(data.get("lateFeeAmount")),
            total_amount=_money(data.get("totalAmount")),
            total_due_amount=_money(data.get("totalDueAmount")),
            overdue_days=int(overdue_days or 0),
            due_date=from_millis(data.get("dueDate")),
            payment_status=_enum(ChargePaymentStatus, status, ChargePaymentStatus.PENDING),
            amount_paid=_money(data.get("amountPaid")),
            payment_date=from_millis(data.get("paymentDate")),
        )

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    @staticmethod
    def user_from_document(data: Dict[str, Any]) -> User:
        return User(
            id=_doc_id(data),
            name=data.get("name") or "",
            email=data.get("email") or "",
            role=_enum(UserRole, data.get("role"), UserRole.DRIVER),
        )

# File: autopark/domain/models.py
"""
Domain Models for the Parking Billing Core

This module contains:
1. Value Objects: immutable rate profiles, time ranges and the overnight window
2. Entities: transactions, invoices, overdue charges and users
3. Enums: rate types, statuses and roles as stored in the document store

Amounts are Decimal throughout and rounded half-up to cents with round_money().
"""

from dataclasses import dataclass, field
from typing import Optional, List, Any
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum


CENTS = Decimal('0.01')
ZERO = Decimal('0')
HOURS_PER_DAY = Decimal('24')
SECONDS_PER_HOUR = Decimal('3600')


def to_decimal(value: Any) -> Decimal:
    """Coerce ints, floats and numeric strings into a Decimal without float noise"""
    if isinstance(value, Decimal):
        return value
    if value is None:
        return ZERO
    return Decimal(str(value))


def round_money(value: Any) -> Decimal:
    """Round an amount to two decimal places, half-up"""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


# ============================================================================
# ENUMS
# ============================================================================

class RateType(Enum):
    """Priced tiers a lot can offer"""
    NORMAL = "NORMAL"
    VIP = "VIP"
    HOURLY = "HOURLY"
    OVERNIGHT = "OVERNIGHT"

    def __str__(self) -> str:
        return self.value


class TransactionStatus(Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    PENDING_PAYMENT = "PENDING_PAYMENT"


class PaymentStatus(Enum):
    """Payment state of a single parking transaction"""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class InvoicePaymentStatus(Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    PARTIAL = "PARTIAL"


class ChargePaymentStatus(Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class UserRole(Enum):
    ADMIN = "admin"
    DRIVER = "driver"


# ============================================================================
# VALUE OBJECTS
# ============================================================================

@dataclass(frozen=True)
class OvernightWindow:
    """
    Value Object: hours of the day that count as overnight
    The default window runs from 20:00 to 08:00 and wraps past midnight.
    """
    start_hour: int = 20
    end_hour: int = 8

    def __post_init__(self):
        for hour in (self.start_hour, self.end_hour):
            if not 0 <= hour <= 23:
                raise ValueError(f"Overnight hours must be between 0 and 23, got: {hour}")

    def contains(self, hour: int) -> bool:
        """Check whether an hour of the day falls inside the window"""
        if self.start_hour > self.end_hour:
            return hour >= self.start_hour or hour < self.end_hour
        return self.start_hour <= hour < self.end_hour

    def __str__(self) -> str:
        return f"{self.start_hour:02d}:00-{self.end_hour:02d}:00"


@dataclass(frozen=True)
class TimeRange:
    """
    Value Object: parking interval between entry and exit
    A zero-length interval is allowed; an exit before the entry is not.
    """
    start_time: datetime
    end_time: datetime

    def __post_init__(self):
        if self.end_time < self.start_time:
            raise ValueError("End time must not be before start time")

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def duration_minutes(self) -> int:
        """Whole minutes parked, truncated"""
        return int(self.duration.total_seconds() // 60)

    @property
    def duration_hours(self) -> Decimal:
        """Fractional hours parked"""
        return to_decimal(self.duration.total_seconds()) / SECONDS_PER_HOUR

    @property
    def duration_days(self) -> Decimal:
        return self.duration_hours / HOURS_PER_DAY

    def is_overnight(self, window: OvernightWindow) -> bool:
        """Both the entry hour and the exit hour sit inside the overnight window"""
        return window.contains(self.start_time.hour) and window.contains(self.end_time.hour)

    def __str__(self) -> str:
        start_str = self.start_time.strftime("%Y-%m-%d %H:%M")
        end_str = self.end_time.strftime("%Y-%m-%d %H:%M")
        return f"{start_str} to {end_str} ({float(self.duration_hours):.1f} hours)"


@dataclass(frozen=True)
class RateProfile:
    """
    Value Object: one priced tier of a lot
    Immutable per version; a new version replaces the old one in the rate store.
    """
    lot_id: str
    rate_type: RateType
    price_per_hour: Decimal = ZERO
    price_per_day: Decimal = ZERO
    overnight_price: Decimal = ZERO
    min_charge: Decimal = ZERO
    max_charge_per_day: Decimal = ZERO
    vip_multiplier: Decimal = Decimal('1.0')
    active: bool = True
    id: str = ""

    def __post_init__(self):
        if not self.lot_id:
            raise ValueError("Rate profile requires a lot id")

        if not isinstance(self.rate_type, RateType):
            object.__setattr__(self, 'rate_type', RateType(self.rate_type))

        for name in ('price_per_hour', 'price_per_day', 'overnight_price',
                     'min_charge', 'max_charge_per_day', 'vip_multiplier'):
            value = to_decimal(getattr(self, name))
            if value < ZERO:
                raise ValueError(f"{name} cannot be negative: {value}")
            object.__setattr__(self, name, value)

    @property
    def key(self) -> tuple:
        return (self.lot_id, self.rate_type)


# ============================================================================
# ENTITIES
# ============================================================================

@dataclass
class User:
    """Read-only view of a user account as far as billing needs it"""
    id: str
    name: str = ""
    email: str = ""
    role: UserRole = UserRole.DRIVER

    @property
    def initials(self) -> str:
        """Uppercased first letters of the first two name parts"""
        parts = [part for part in self.name.split(" ") if part]
        return "".join(part[0].upper() for part in parts[:2])


@dataclass
class ParkingTransaction:
    """
    Entity: one stay of a vehicle in a lot
    Created ACTIVE at entry and completed exactly once at exit.
    """
    lot_id: str
    vehicle_id: str
    owner_id: str
    entry_time: datetime
    vehicle_number: str = ""
    rate_type: RateType = RateType.NORMAL
    exit_time: Optional[datetime] = None
    duration_minutes: int = 0
    charge_amount: Decimal = ZERO
    status: TransactionStatus = TransactionStatus.ACTIVE
    payment_status: PaymentStatus = PaymentStatus.PENDING
    id: str = ""

    @property
    def is_active(self) -> bool:
        return self.status == TransactionStatus.ACTIVE

    @property
    def is_completed(self) -> bool:
        return self.status == TransactionStatus.COMPLETED

    def complete(self, exit_time: datetime, charge_amount: Decimal) -> None:
        """Record the exit; a completed transaction is never reopened"""
        if not self.is_active:
            raise ValueError(f"Transaction {self.id} is {self.status.value}, not ACTIVE")

        time_range = TimeRange(self.entry_time, exit_time)
        self.exit_time = exit_time
        self.duration_minutes = time_range.duration_minutes
        self.charge_amount = round_money(charge_amount)
        self.status = TransactionStatus.COMPLETED
        self.payment_status = PaymentStatus.PENDING


@dataclass
class Invoice:
    """
    Entity: monthly billing statement for one owner
    Holds a denormalized snapshot of the month's transaction totals.
    """
    owner_id: str
    month: int
    year: int
    invoice_number: str = ""
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    total_transactions: int = 0
    total_hours: Decimal = ZERO
    total_charges: Decimal = ZERO
    total_amount: Decimal = ZERO
    payment_status: InvoicePaymentStatus = InvoicePaymentStatus.PENDING
    due_date: Optional[datetime] = None
    amount_paid: Decimal = ZERO
    payment_date: Optional[datetime] = None
    transaction_ids: List[str] = field(default_factory=list)
    id: str = ""

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise ValueError(f"Month must be between 1 and 12, got: {self.month}")

    @property
    def outstanding_amount(self) -> Decimal:
        return round_money(self.total_amount - self.amount_paid)

    def is_overdue(self, now: datetime) -> bool:
        """Past the due date with money still owed"""
        if self.due_date is None:
            return False
        return now > self.due_date and self.total_amount > self.amount_paid

    def record_payment(self, amount: Decimal, paid_at: datetime) -> None:
        self.amount_paid = round_money(self.amount_paid + to_decimal(amount))
        self.payment_date = paid_at
        if self.amount_paid >= self.total_amount:
            self.payment_status = InvoicePaymentStatus.PAID
        else:
            self.payment_status = InvoicePaymentStatus.PARTIAL


@dataclass
class OverdueCharge:
    """
    Entity: late fee raised against one unpaid invoice

    total_amount includes the late fee, total_due_amount does not; both are
    snapshots taken when the charge is created.
    """
    owner_id: str
    invoice_id: str
    invoice_number: str
    original_amount: Decimal
    late_fee_percentage: Decimal
    late_fee_amount: Decimal
    total_amount: Decimal
    total_due_amount: Decimal
    overdue_days: int
    due_date: Optional[datetime] = None
    payment_status: ChargePaymentStatus = ChargePaymentStatus.PENDING
    amount_paid: Decimal = ZERO
    payment_date: Optional[datetime] = None
    id: str = ""

    @property
    def is_paid(self) -> bool:
        return self.payment_status == ChargePaymentStatus.PAID

    def record_payment(self, amount: Decimal, paid_at: datetime) -> None:
        self.amount_paid = round_money(self.amount_paid + to_decimal(amount))
        self.payment_date = paid_at
        if self.amount_paid >= self.total_due_amount:
            self.payment_status = ChargePaymentStatus.PAID

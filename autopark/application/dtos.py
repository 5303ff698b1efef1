# File: autopark/application/dtos.py
"""
Data Transfer Objects returned by the billing use cases

Use cases never raise to their callers. They hand back an OperationResult
(single item) or a BatchResult (fan-out over users) carrying an ErrorKind,
so callers and tests can inspect why something failed.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Generic, TypeVar
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from ..domain.exceptions import (
    BillingError, NotFoundError, InvalidArgumentError
)


T = TypeVar('T')


class ErrorKind(Enum):
    """Failure taxonomy shared by all use cases"""
    NOT_FOUND = "NOT_FOUND"
    INVALID_FORMAT = "INVALID_FORMAT"
    EXPIRED = "EXPIRED"
    HASH_MISMATCH = "HASH_MISMATCH"
    STORE_FAILURE = "STORE_FAILURE"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"


@dataclass
class OperationResult(Generic[T]):
    """Result of a single use case"""
    success: bool
    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: Optional[str] = None

    @classmethod
    def ok(cls, value: T, message: Optional[str] = None) -> 'OperationResult[T]':
        return cls(success=True, value=value, message=message)

    @classmethod
    def fail(cls, error: ErrorKind, message: str) -> 'OperationResult[T]':
        return cls(success=False, error=error, message=message)

    @classmethod
    def from_error(cls, error: BillingError) -> 'OperationResult[T]':
        """Translate a billing exception into a failed result"""
        return cls.fail(error_kind_for(error), str(error))

    def get_or_none(self) -> Optional[T]:
        return self.value if self.success else None


def error_kind_for(error: BillingError) -> ErrorKind:
    if isinstance(error, NotFoundError):
        return ErrorKind.NOT_FOUND
    if isinstance(error, InvalidArgumentError):
        return ErrorKind.INVALID_ARGUMENT
    return ErrorKind.STORE_FAILURE


@dataclass
class UserFailure:
    """One user that a batch could not process"""
    user_id: str
    error: ErrorKind
    message: str


@dataclass
class BatchResult(Generic[T]):
    """
    Result of a batch over all drivers
    success_count counts users, items collects what the batch produced.
    """
    success_count: int = 0
    items: List[T] = field(default_factory=list)
    failures: List[UserFailure] = field(default_factory=list)
    error: Optional[ErrorKind] = None
    message: Optional[str] = None

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def total_users(self) -> int:
        return self.success_count + self.failure_count


# ============================================================================
# REPORT DTOs
# ============================================================================

class BaseDTO(BaseModel):
    """Base DTO for read models handed to reporting callers"""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        frozen=True,
    )

    def to_dict(self, exclude_none: bool = False, **kwargs) -> Dict[str, Any]:
        """Convert DTO to dictionary"""
        return self.model_dump(exclude_none=exclude_none, **kwargs)

    def to_json(self, **kwargs) -> str:
        return self.model_dump_json(**kwargs)


class MonthlyReportDTO(BaseDTO):
    """Monthly activity summary for the whole network or one lot"""
    month: int = Field(ge=1, le=12, description="Report month")
    year: int = Field(ge=1, description="Report year")
    total_parkings: int = Field(default=0, ge=0, description="Transactions that entered in the month")
    total_revenue: Decimal = Field(default=Decimal('0.00'), description="Revenue of completed parkings")
    total_owners: int = Field(default=0, ge=0)
    total_vehicles: int = Field(default=0, ge=0)
    average_charge_per_parking: Decimal = Field(default=Decimal('0.00'))
    lot_id: Optional[str] = Field(default=None, description="Lot filter, None for the whole network")


class RevenueStatsDTO(BaseDTO):
    """Revenue split by rate type over a period"""
    total_revenue: Decimal = Field(default=Decimal('0.00'))
    by_rate_type: Dict[str, Decimal] = Field(default_factory=dict)

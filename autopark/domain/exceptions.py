# File: autopark/domain/exceptions.py
"""
Exception hierarchy for the billing core.

Stores raise these; application services catch them at the use-case
boundary and turn them into result DTOs carrying an ErrorKind.
"""

from typing import Optional


class BillingError(Exception):
    """Base exception for billing errors"""
    pass


class NotFoundError(BillingError):
    """Raised when a rate, invoice, charge, transaction or user is missing"""

    def __init__(self, entity: str, key: str):
        super().__init__(f"{entity} not found: {key}")
        self.entity = entity
        self.key = key


class StoreError(BillingError):
    """Raised when the backing store cannot be reached or rejects a write"""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class InvalidArgumentError(BillingError):
    """Raised for caller mistakes such as a non-positive payment amount"""
    pass

# File: autopark/infrastructure/repositories.py
"""
Store interfaces consumed by the billing core, plus in-memory and caching
implementations

The billing services only see the abstract stores below. Concrete adapters:
- In-memory stores - tests and local development
- MongoDB stores (mongo_repositories.py) - the production document store
- CachingRateLookup - Redis cache in front of any rate lookup

Readers return None for a missing record. Adapters raise StoreError when the
backing store fails; they never swallow it.
"""

from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Tuple, Iterable, Any
from datetime import datetime
import copy
import json
import logging
from uuid import uuid4

import redis

from ..domain.exceptions import StoreError, NotFoundError
from ..domain.models import (
    RateProfile, ParkingTransaction, Invoice, OverdueCharge, User,
    RateType, UserRole, InvoicePaymentStatus
)
from .mappers import DocumentMapper


# ============================================================================
# STORE INTERFACES
# ============================================================================

class TransactionStore(ABC):
    """Ledger of entry/exit transactions"""

    @abstractmethod
    def list_transactions(
        self,
        owner_id: str,
        from_time: datetime,
        to_time: datetime
    ) -> List[ParkingTransaction]:
        """Owner's transactions with entry time in [from_time, to_time)"""
        pass

    @abstractmethod
    def list_transactions_in_range(
        self,
        from_time: datetime,
        to_time: datetime,
        lot_id: Optional[str] = None
    ) -> List[ParkingTransaction]:
        """All transactions with entry time in [from_time, to_time), optionally for one lot"""
        pass

    @abstractmethod
    def get_transaction(self, transaction_id: str) -> Optional[ParkingTransaction]:
        pass

    @abstractmethod
    def find_active_transaction(self, vehicle_id: str) -> Optional[ParkingTransaction]:
        """The vehicle's ACTIVE transaction, if it is currently parked"""
        pass

    @abstractmethod
    def upsert_transaction(self, transaction: ParkingTransaction) -> ParkingTransaction:
        """Insert or replace; assigns an id to new transactions"""
        pass


class InvoiceStore(ABC):

    @abstractmethod
    def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        pass

    @abstractmethod
    def get_monthly_invoice(self, owner_id: str, month: int, year: int) -> Optional[Invoice]:
        pass

    @abstractmethod
    def upsert_invoice(self, invoice: Invoice) -> Invoice:
        """Insert or replace; at most one invoice per (owner, month, year)"""
        pass

    @abstractmethod
    def list_pending_invoices(self, owner_id: str) -> List[Invoice]:
        pass


class OverdueChargeStore(ABC):

    @abstractmethod
    def get_charge(self, charge_id: str) -> Optional[OverdueCharge]:
        pass

    @abstractmethod
    def list_charges_by_invoice(self, invoice_id: str) -> List[OverdueCharge]:
        pass

    @abstractmethod
    def insert_charge(self, charge: OverdueCharge) -> OverdueCharge:
        pass

    @abstractmethod
    def update_charge(self, charge: OverdueCharge) -> OverdueCharge:
        pass


class UserDirectory(ABC):

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    def list_users_by_role(self, role: UserRole) -> List[User]:
        pass


class RateLookup(ABC):

    @abstractmethod
    def get_active_rate(self, lot_id: str, rate_type: RateType) -> Optional[RateProfile]:
        """The single active profile for (lot, rate type)"""
        pass


# ============================================================================
# IN-MEMORY IMPLEMENTATIONS
# ============================================================================

class _InMemoryStore:
    """Keeps deep copies so callers cannot mutate stored state by accident"""

    def __init__(self):
        self._items: Dict[str, Any] = {}
        self._logger = logging.getLogger(self.__class__.__name__)

    def _save(self, entity: Any) -> Any:
        if not entity.id:
            entity.id = str(uuid4())
        self._items[entity.id] = copy.deepcopy(entity)
        self._logger.debug(f"Saved {type(entity).__name__} {entity.id}")
        return copy.deepcopy(entity)

    def _get(self, entity_id: str) -> Optional[Any]:
        entity = self._items.get(entity_id)
        return copy.deepcopy(entity) if entity is not None else None

    def _values(self) -> Iterable[Any]:
        return (copy.deepcopy(entity) for entity in self._items.values())

    def count(self) -> int:
        return len(self._items)

    def clear(self):
        self._items.clear()


class InMemoryTransactionStore(_InMemoryStore, TransactionStore):

    def list_transactions(self, owner_id, from_time, to_time):
        return sorted(
            (tx for tx in self._values()
             if tx.owner_id == owner_id and from_time <= tx.entry_time < to_time),
            key=lambda tx: tx.entry_time
        )

    def list_transactions_in_range(self, from_time, to_time, lot_id=None):
        return sorted(
            (tx for tx in self._values()
             if from_time <= tx.entry_time < to_time and (lot_id is None or tx.lot_id == lot_id)),
            key=lambda tx: tx.entry_time
        )

    def get_transaction(self, transaction_id):
        return self._get(transaction_id)

    def find_active_transaction(self, vehicle_id):
        for tx in self._values():
            if tx.vehicle_id == vehicle_id and tx.is_active:
                return tx
        return None

    def upsert_transaction(self, transaction):
        return self._save(transaction)


class InMemoryInvoiceStore(_InMemoryStore, InvoiceStore):

    def get_invoice(self, invoice_id):
        return self._get(invoice_id)

    def get_monthly_invoice(self, owner_id, month, year):
        for invoice in self._values():
            if (invoice.owner_id, invoice.month, invoice.year) == (owner_id, month, year):
                return invoice
        return None

    def upsert_invoice(self, invoice):
        existing = self.get_monthly_invoice(invoice.owner_id, invoice.month, invoice.year)
        if existing is not None and existing.id != invoice.id:
            # keep the (owner, month, year) key unique, the way the Mongo index does
            invoice.id = existing.id
        return self._save(invoice)

    def list_pending_invoices(self, owner_id):
        return [
            invoice for invoice in self._values()
            if invoice.owner_id == owner_id
            and invoice.payment_status == InvoicePaymentStatus.PENDING
        ]


class InMemoryOverdueChargeStore(_InMemoryStore, OverdueChargeStore):

    def get_charge(self, charge_id):
        return self._get(charge_id)

    def list_charges_by_invoice(self, invoice_id):
        return [charge for charge in self._values() if charge.invoice_id == invoice_id]

    def insert_charge(self, charge):
        if charge.id and charge.id in self._items:
            raise StoreError(f"Overdue charge {charge.id} already exists")
        return self._save(charge)

    def update_charge(self, charge):
        if charge.id not in self._items:
            raise NotFoundError("Overdue charge", charge.id)
        return self._save(charge)


class InMemoryUserDirectory(UserDirectory):

    def __init__(self, users: Optional[Iterable[User]] = None):
        self._users: Dict[str, User] = {user.id: user for user in users or []}

    def add(self, user: User) -> User:
        self._users[user.id] = user
        return user

    def get_user(self, user_id):
        return self._users.get(user_id)

    def list_users_by_role(self, role):
        return [user for user in self._users.values() if user.role == role]


class RateTable(RateLookup):
    """
    Static rate table, typically loaded from configuration
    Enforces one active profile per (lot, rate type).
    """

    def __init__(self, profiles: Optional[Iterable[RateProfile]] = None):
        self._active: Dict[Tuple[str, RateType], RateProfile] = {}
        self._inactive: List[RateProfile] = []
        for profile in profiles or []:
            self.add(profile)

    def add(self, profile: RateProfile) -> RateProfile:
        if not profile.active:
            self._inactive.append(profile)
            return profile
        if profile.key in self._active:
            lot_id, rate_type = profile.key
            raise ValueError(f"Lot {lot_id} already has an active {rate_type.value} rate")
        self._active[profile.key] = profile
        return profile

    def get_active_rate(self, lot_id, rate_type):
        return self._active.get((lot_id, rate_type))

    def __len__(self) -> int:
        return len(self._active)

    @classmethod
    def from_config(cls, entries: Iterable[Dict[str, Any]]) -> 'RateTable':
        """Build a table from rate documents, e.g. the `rates` list of the YAML config"""
        return cls(DocumentMapper.rate_from_document(entry) for entry in entries)


# ============================================================================
# CACHING RATE LOOKUP (Decorator Pattern)
# ============================================================================

class CachingRateLookup(RateLookup):
    """
    Rate lookup decorator that caches active profiles in Redis

    Cache failures are logged and the wrapped lookup is used instead; a miss
    on the wrapped lookup is not cached.
    """

    def __init__(self, lookup: RateLookup, cache_client: redis.Redis, ttl_seconds: int = 300):
        self.lookup = lookup
        self.cache = cache_client
        self.ttl_seconds = ttl_seconds
        self._logger = logging.getLogger(self.__class__.__name__)
        self.cache_prefix = "autopark:rate:"

    def _cache_key(self, lot_id: str, rate_type: RateType) -> str:
        return f"{self.cache_prefix}{lot_id}:{rate_type.value}"

    def get_active_rate(self, lot_id, rate_type):
        cache_key = self._cache_key(lot_id, rate_type)

        try:
            cached = self.cache.get(cache_key)
        except redis.RedisError as e:
            self._logger.warning(f"Rate cache read failed for {cache_key}: {e}")
            cached = None

        if cached:
            self._logger.debug(f"Cache hit for {cache_key}")
            return DocumentMapper.rate_from_document(json.loads(cached))

        rate = self.lookup.get_active_rate(lot_id, rate_type)
        if rate is not None:
            try:
                payload = json.dumps(DocumentMapper.rate_to_document(rate))
                self.cache.set(cache_key, payload, ex=self.ttl_seconds)
                self._logger.debug(f"Cached rate {cache_key}")
            except redis.RedisError as e:
                self._logger.warning(f"Rate cache write failed for {cache_key}: {e}")

        return rate

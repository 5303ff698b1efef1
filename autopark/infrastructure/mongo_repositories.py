# File: autopark/infrastructure/mongo_repositories.py
"""
MongoDB adapters for the billing stores

Collections follow the mobile app's names (parking_transactions, invoices,
overdue_charges, users, parking_rates). Every driver error is wrapped in a
StoreError, and so is every document the mapper cannot read; retry policy
belongs to the pymongo client, not to this module.

Invoice upserts are keyed on (ownerId, month, year) and backed by a unique
index, so two concurrent regenerations of the same month cannot create two
invoices. The overdue-charge collection has a unique index on invoiceId for
the same reason.
"""

from typing import Optional, List, Dict, Any, Callable, TypeVar
from uuid import uuid4
import logging

from pymongo import ASCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError, DuplicateKeyError

from ..domain.exceptions import StoreError, NotFoundError
from ..domain.models import InvoicePaymentStatus
from .mappers import DocumentMapper, to_millis
from .repositories import (
    TransactionStore, InvoiceStore, OverdueChargeStore, UserDirectory, RateLookup
)


R = TypeVar('R')

COLLECTION_USERS = "users"
COLLECTION_PARKING_RATES = "parking_rates"
COLLECTION_TRANSACTIONS = "parking_transactions"
COLLECTION_INVOICES = "invoices"
COLLECTION_OVERDUE_CHARGES = "overdue_charges"


class MongoStore:
    """Shared plumbing: collection handle and error translation"""

    collection_name: str = ""

    def __init__(self, database: Database):
        self.collection = database[self.collection_name]
        self._logger = logging.getLogger(self.__class__.__name__)

    def _call(self, action: str, operation: Callable[[], R]) -> R:
        try:
            return operation()
        except PyMongoError as e:
            self._logger.error(f"{action} failed on {self.collection_name}: {e}")
            raise StoreError(f"{action} failed on {self.collection_name}", e) from e

    def _decode(self, mapper: Callable[[Dict[str, Any]], R], document: Dict[str, Any]) -> R:
        try:
            return mapper(document)
        except (ValueError, TypeError, KeyError, ArithmeticError) as e:
            self._logger.error(
                f"Malformed document {document.get('_id')} in {self.collection_name}: {e}"
            )
            raise StoreError(f"Malformed document in {self.collection_name}", e) from e

    @staticmethod
    def _with_id(document: Dict[str, Any], entity_id: str) -> Dict[str, Any]:
        document = dict(document)
        document["_id"] = entity_id
        document["id"] = entity_id
        return document

    def _replace(self, entity_id: str, document: Dict[str, Any]) -> None:
        self._call(
            "replace",
            lambda: self.collection.replace_one({"_id": entity_id}, document, upsert=True)
        )

    def ensure_indexes(self) -> None:
        pass


class MongoTransactionStore(MongoStore, TransactionStore):
    collection_name = COLLECTION_TRANSACTIONS

    def _find(self, query: Dict[str, Any]) -> List:
        cursor = self._call(
            "find",
            lambda: list(self.collection.find(query).sort("entryTime", ASCENDING))
        )
        return [self._decode(DocumentMapper.transaction_from_document, doc) for doc in cursor]

    def list_transactions(self, owner_id, from_time, to_time):
        return self._find({
            "ownerId": owner_id,
            "entryTime": {"$gte": to_millis(from_time), "$lt": to_millis(to_time)},
        })

    def list_transactions_in_range(self, from_time, to_time, lot_id=None):
        query: Dict[str, Any] = {
            "entryTime": {"$gte": to_millis(from_time), "$lt": to_millis(to_time)},
        }
        if lot_id is not None:
            query["parkingLotId"] = lot_id
        return self._find(query)

    def get_transaction(self, transaction_id):
        doc = self._call("find_one", lambda: self.collection.find_one({"_id": transaction_id}))
        return self._decode(DocumentMapper.transaction_from_document, doc) if doc else None

    def find_active_transaction(self, vehicle_id):
        doc = self._call(
            "find_one",
            lambda: self.collection.find_one({"vehicleId": vehicle_id, "status": "ACTIVE"})
        )
        return self._decode(DocumentMapper.transaction_from_document, doc) if doc else None

    def upsert_transaction(self, transaction):
        if not transaction.id:
            transaction.id = str(uuid4())
        document = self._with_id(DocumentMapper.transaction_to_document(transaction), transaction.id)
        self._replace(transaction.id, document)
        return transaction

    def ensure_indexes(self):
        self._call("create_index", lambda: self.collection.create_index(
            [("ownerId", ASCENDING), ("entryTime", ASCENDING)]
        ))
        self._call("create_index", lambda: self.collection.create_index(
            [("vehicleId", ASCENDING), ("status", ASCENDING)]
        ))


class MongoInvoiceStore(MongoStore, InvoiceStore):
    collection_name = COLLECTION_INVOICES

    def get_invoice(self, invoice_id):
        doc = self._call("find_one", lambda: self.collection.find_one({"_id": invoice_id}))
        return self._decode(DocumentMapper.invoice_from_document, doc) if doc else None

    def get_monthly_invoice(self, owner_id, month, year):
        doc = self._call(
            "find_one",
            lambda: self.collection.find_one({"ownerId": owner_id, "month": month, "year": year})
        )
        return self._decode(DocumentMapper.invoice_from_document, doc) if doc else None

    def upsert_invoice(self, invoice):
        key = {"ownerId": invoice.owner_id, "month": invoice.month, "year": invoice.year}
        fields = DocumentMapper.invoice_to_document(invoice)
        fields.pop("id", None)
        new_id = invoice.id or str(uuid4())

        def write() -> Dict[str, Any]:
            return self.collection.find_one_and_update(
                key,
                {"$set": fields, "$setOnInsert": {"_id": new_id, "id": new_id}},
                upsert=True,
                return_document=ReturnDocument.AFTER
            )

        try:
            doc = self._call("upsert", write)
        except StoreError as e:
            if not isinstance(e.cause, DuplicateKeyError):
                raise
            # a concurrent writer inserted the same month first; update theirs
            self._logger.info(f"Invoice for {key} created concurrently, updating it")
            doc = self._call("upsert", write)

        invoice.id = str(doc["_id"])
        return invoice

    def list_pending_invoices(self, owner_id):
        docs = self._call("find", lambda: list(self.collection.find({
            "ownerId": owner_id,
            "paymentStatus": InvoicePaymentStatus.PENDING.value,
        })))
        return [self._decode(DocumentMapper.invoice_from_document, doc) for doc in docs]

    def ensure_indexes(self):
        self._call("create_index", lambda: self.collection.create_index(
            [("ownerId", ASCENDING), ("month", ASCENDING), ("year", ASCENDING)],
            unique=True
        ))


class MongoOverdueChargeStore(MongoStore, OverdueChargeStore):
    collection_name = COLLECTION_OVERDUE_CHARGES

    def get_charge(self, charge_id):
        doc = self._call("find_one", lambda: self.collection.find_one({"_id": charge_id}))
        return self._decode(DocumentMapper.charge_from_document, doc) if doc else None

    def list_charges_by_invoice(self, invoice_id):
        docs = self._call("find", lambda: list(self.collection.find({"invoiceId": invoice_id})))
        return [self._decode(DocumentMapper.charge_from_document, doc) for doc in docs]

    def insert_charge(self, charge):
        if not charge.id:
            charge.id = str(uuid4())
        document = self._with_id(DocumentMapper.charge_to_document(charge), charge.id)
        self._call("insert", lambda: self.collection.insert_one(document))
        return charge

    def update_charge(self, charge):
        document = self._with_id(DocumentMapper.charge_to_document(charge), charge.id)
        result = self._call(
            "replace", lambda: self.collection.replace_one({"_id": charge.id}, document)
        )
        if result.matched_count == 0:
            raise NotFoundError("Overdue charge", charge.id)
        return charge

    def ensure_indexes(self):
        self._call("create_index", lambda: self.collection.create_index(
            [("invoiceId", ASCENDING)], unique=True
        ))


class MongoUserDirectory(MongoStore, UserDirectory):
    collection_name = COLLECTION_USERS

    def get_user(self, user_id):
        doc = self._call("find_one", lambda: self.collection.find_one({"_id": user_id}))
        return self._decode(DocumentMapper.user_from_document, doc) if doc else None

    def list_users_by_role(self, role):
        docs = self._call("find", lambda: list(self.collection.find({"role": role.value})))
        return [self._decode(DocumentMapper.user_from_document, doc) for doc in docs]


class MongoRateLookup(MongoStore, RateLookup):
    collection_name = COLLECTION_PARKING_RATES

    def get_active_rate(self, lot_id, rate_type):
        docs = self._call("find", lambda: list(self.collection.find({
            "parkingLotId": lot_id,
            "rateType": rate_type.value,
            "isActive": True,
        }).limit(2)))

        if not docs:
            return None
        if len(docs) > 1:
            self._logger.warning(
                f"Lot {lot_id} has more than one active {rate_type.value} rate, using the first"
            )
        return self._decode(DocumentMapper.rate_from_document, docs[0])

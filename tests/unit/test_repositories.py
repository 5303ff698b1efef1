#!/usr/bin/env python3
"""
Store Unit Tests

In-memory stores, the rate table, the Redis rate cache and the MongoDB
adapters (against mocked collections).
"""

import json
import unittest
from unittest.mock import Mock, MagicMock
from datetime import datetime
from decimal import Decimal

import redis
from pymongo.errors import DuplicateKeyError, PyMongoError

from autopark.domain.exceptions import StoreError, NotFoundError
from autopark.domain.models import (
    RateProfile, RateType, ParkingTransaction, Invoice, OverdueCharge,
    InvoicePaymentStatus, User, UserRole
)
from autopark.infrastructure.mappers import DocumentMapper, to_millis
from autopark.infrastructure.mongo_repositories import (
    MongoTransactionStore, MongoInvoiceStore, MongoOverdueChargeStore,
    MongoUserDirectory, MongoRateLookup
)
from autopark.infrastructure.repositories import (
    InMemoryTransactionStore, InMemoryInvoiceStore, InMemoryOverdueChargeStore,
    InMemoryUserDirectory, RateTable, CachingRateLookup
)


def normal_rate(lot_id="LOT-1", **overrides):
    values = dict(lot_id=lot_id, rate_type=RateType.NORMAL, price_per_hour=Decimal("5"),
                  min_charge=Decimal("2"))
    values.update(overrides)
    return RateProfile(**values)


def make_charge(invoice_id="inv-1", **overrides):
    values = dict(
        owner_id="u1", invoice_id=invoice_id, invoice_number="INV-1",
        original_amount=Decimal("100"), late_fee_percentage=Decimal("10"),
        late_fee_amount=Decimal("10"), total_amount=Decimal("110"),
        total_due_amount=Decimal("100"), overdue_days=1,
    )
    values.update(overrides)
    return OverdueCharge(**values)


# ============================================================================
# IN-MEMORY STORES
# ============================================================================

class TestInMemoryStores(unittest.TestCase):

    def test_transaction_store_copies_on_write_and_read(self):
        store = InMemoryTransactionStore()
        tx = ParkingTransaction("LOT-1", "v1", "u1", datetime(2026, 5, 1, 9))
        saved = store.upsert_transaction(tx)

        saved.owner_id = "changed"

        self.assertEqual(store.get_transaction(saved.id).owner_id, "u1")
        self.assertEqual(tx.id, saved.id)

    def test_transaction_range_is_half_open(self):
        store = InMemoryTransactionStore()
        store.upsert_transaction(ParkingTransaction("LOT-1", "v1", "u1", datetime(2026, 5, 1)))
        store.upsert_transaction(ParkingTransaction("LOT-1", "v2", "u1", datetime(2026, 6, 1)))

        found = store.list_transactions("u1", datetime(2026, 5, 1), datetime(2026, 6, 1))

        self.assertEqual([tx.vehicle_id for tx in found], ["v1"])

    def test_invoice_store_keeps_one_invoice_per_month(self):
        store = InMemoryInvoiceStore()
        first = store.upsert_invoice(Invoice(owner_id="u1", month=5, year=2026))
        second = store.upsert_invoice(Invoice(owner_id="u1", month=5, year=2026))

        self.assertEqual(first.id, second.id)
        self.assertEqual(store.count(), 1)

    def test_pending_invoices(self):
        store = InMemoryInvoiceStore()
        store.upsert_invoice(Invoice(owner_id="u1", month=4, year=2026))
        store.upsert_invoice(Invoice(owner_id="u1", month=5, year=2026,
                                     payment_status=InvoicePaymentStatus.PARTIAL))
        store.upsert_invoice(Invoice(owner_id="u2", month=5, year=2026))

        self.assertEqual([invoice.month for invoice in store.list_pending_invoices("u1")], [4])

    def test_charge_insert_and_update(self):
        store = InMemoryOverdueChargeStore()
        charge = store.insert_charge(make_charge())

        with self.assertRaises(StoreError):
            store.insert_charge(charge)
        with self.assertRaises(NotFoundError):
            store.update_charge(make_charge(id="missing"))

        self.assertEqual(len(store.list_charges_by_invoice("inv-1")), 1)

    def test_user_directory_filters_by_role(self):
        users = InMemoryUserDirectory([
            User(id="u1", role=UserRole.DRIVER),
            User(id="a1", role=UserRole.ADMIN),
        ])
        self.assertEqual([u.id for u in users.list_users_by_role(UserRole.DRIVER)], ["u1"])
        self.assertIsNone(users.get_user("nobody"))


class TestRateTable(unittest.TestCase):

    def test_lookup(self):
        table = RateTable([normal_rate()])
        self.assertEqual(table.get_active_rate("LOT-1", RateType.NORMAL).price_per_hour, Decimal("5"))
        self.assertIsNone(table.get_active_rate("LOT-1", RateType.VIP))

    def test_one_active_profile_per_lot_and_type(self):
        table = RateTable([normal_rate()])
        with self.assertRaises(ValueError):
            table.add(normal_rate(price_per_hour=Decimal("6")))

        table.add(normal_rate(price_per_hour=Decimal("4"), active=False))
        self.assertEqual(len(table), 1)
        self.assertEqual(table.get_active_rate("LOT-1", RateType.NORMAL).price_per_hour, Decimal("5"))

    def test_from_config(self):
        table = RateTable.from_config([
            {"parkingLotId": "LOT-1", "rateType": "VIP", "pricePerHour": 5.0, "vipMultiplier": 1.5},
        ])
        rate = table.get_active_rate("LOT-1", RateType.VIP)
        self.assertEqual(rate.vip_multiplier, Decimal("1.5"))


# ============================================================================
# REDIS RATE CACHE
# ============================================================================

class TestCachingRateLookup(unittest.TestCase):

    def setUp(self):
        self.inner = Mock()
        self.cache = Mock()
        self.lookup = CachingRateLookup(self.inner, self.cache, ttl_seconds=60)

    def test_miss_reads_through_and_caches(self):
        self.cache.get.return_value = None
        self.inner.get_active_rate.return_value = normal_rate()

        rate = self.lookup.get_active_rate("LOT-1", RateType.NORMAL)

        self.assertEqual(rate.price_per_hour, Decimal("5"))
        key, payload = self.cache.set.call_args[0]
        self.assertEqual(key, "autopark:rate:LOT-1:NORMAL")
        self.assertEqual(json.loads(payload)["pricePerHour"], 5.0)
        self.assertEqual(self.cache.set.call_args[1], {"ex": 60})

    def test_hit_skips_wrapped_lookup(self):
        self.cache.get.return_value = json.dumps(
            DocumentMapper.rate_to_document(normal_rate())
        ).encode("utf-8")

        rate = self.lookup.get_active_rate("LOT-1", RateType.NORMAL)

        self.assertEqual(rate.min_charge, Decimal("2"))
        self.inner.get_active_rate.assert_not_called()

    def test_absent_rate_not_cached(self):
        self.cache.get.return_value = None
        self.inner.get_active_rate.return_value = None

        self.assertIsNone(self.lookup.get_active_rate("LOT-1", RateType.NORMAL))
        self.cache.set.assert_not_called()

    def test_cache_outage_falls_back(self):
        self.cache.get.side_effect = redis.ConnectionError("refused")
        self.cache.set.side_effect = redis.ConnectionError("refused")
        self.inner.get_active_rate.return_value = normal_rate()

        with self.assertLogs("CachingRateLookup", level="WARNING"):
            rate = self.lookup.get_active_rate("LOT-1", RateType.NORMAL)

        self.assertEqual(rate.price_per_hour, Decimal("5"))


# ============================================================================
# DOCUMENT MAPPER
# ============================================================================

class TestDocumentMapper(unittest.TestCase):

    def test_invoice_document_shape(self):
        due = datetime(2026, 6, 15, 23, 59, 59)
        invoice = Invoice(owner_id="u1", month=5, year=2026, total_amount=Decimal("37.50"),
                          due_date=due, transaction_ids=["t1"], id="inv-1")

        doc = DocumentMapper.invoice_to_document(invoice)

        self.assertEqual(doc["ownerId"], "u1")
        self.assertEqual(doc["totalAmount"], 37.5)
        self.assertEqual(doc["dueDate"], to_millis(due))
        self.assertEqual(doc["paymentStatus"], "PENDING")
        self.assertEqual(DocumentMapper.invoice_from_document(doc), invoice)

    def test_missing_fields_get_defaults(self):
        tx = DocumentMapper.transaction_from_document({"_id": "t1", "ownerId": "u1"})
        self.assertEqual(tx.id, "t1")
        self.assertEqual(tx.charge_amount, Decimal("0.00"))
        self.assertIsNone(tx.exit_time)
        self.assertTrue(tx.is_active)

        invoice = DocumentMapper.invoice_from_document({"id": "i1", "month": 5, "year": 2026,
                                                        "totalAmount": None})
        self.assertEqual(invoice.total_amount, Decimal("0.00"))
        self.assertEqual(invoice.transaction_ids, [])

    def test_unknown_enum_values_fall_back(self):
        user = DocumentMapper.user_from_document({"_id": "u1", "role": "superuser"})
        self.assertEqual(user.role, UserRole.DRIVER)

    def test_legacy_charge_fields(self):
        charge = DocumentMapper.charge_from_document({
            "_id": "c1", "invoiceId": "inv-1", "daysOverdue": 4, "paymentStatus": "COMPLETED",
            "totalAmount": 140.0,
        })
        self.assertEqual(charge.overdue_days, 4)
        self.assertTrue(charge.is_paid)
        self.assertEqual(charge.total_amount, Decimal("140.00"))

    def test_rate_legacy_min_charge(self):
        rate = DocumentMapper.rate_from_document(
            {"parkingLotId": "LOT-1", "rateType": "NORMAL", "minCharge": 3}
        )
        self.assertEqual(rate.min_charge, Decimal("3"))
        self.assertTrue(rate.active)


# ============================================================================
# MONGODB ADAPTERS
# ============================================================================

class MongoTestBase(unittest.TestCase):

    def setUp(self):
        self.database = MagicMock()
        self.collection = self.database.__getitem__.return_value


class TestMongoStores(MongoTestBase):

    def test_transaction_query(self):
        self.collection.find.return_value.sort.return_value = [
            {"_id": "t1", "ownerId": "u1", "entryTime": to_millis(datetime(2026, 5, 2, 9))}
        ]
        store = MongoTransactionStore(self.database)

        found = store.list_transactions("u1", datetime(2026, 5, 1), datetime(2026, 6, 1))

        self.database.__getitem__.assert_called_with("parking_transactions")
        query = self.collection.find.call_args[0][0]
        self.assertEqual(query["ownerId"], "u1")
        self.assertEqual(query["entryTime"]["$gte"], to_millis(datetime(2026, 5, 1)))
        self.assertEqual(query["entryTime"]["$lt"], to_millis(datetime(2026, 6, 1)))
        self.assertEqual(found[0].entry_time, datetime(2026, 5, 2, 9))

    def test_transaction_upsert_assigns_id(self):
        store = MongoTransactionStore(self.database)
        tx = store.upsert_transaction(ParkingTransaction("LOT-1", "v1", "u1", datetime(2026, 5, 2)))

        self.assertTrue(tx.id)
        args, kwargs = self.collection.replace_one.call_args
        self.assertEqual(args[0], {"_id": tx.id})
        self.assertEqual(args[1]["vehicleId"], "v1")
        self.assertTrue(kwargs["upsert"])

    def test_driver_errors_become_store_errors(self):
        self.collection.find_one.side_effect = PyMongoError("network timeout")
        store = MongoTransactionStore(self.database)

        with self.assertRaises(StoreError) as ctx:
            store.find_active_transaction("v1")
        self.assertIsInstance(ctx.exception.cause, PyMongoError)

    def test_invoice_upsert_keyed_on_owner_month_year(self):
        self.collection.find_one_and_update.return_value = {"_id": "inv-1"}
        store = MongoInvoiceStore(self.database)

        invoice = store.upsert_invoice(Invoice(owner_id="u1", month=5, year=2026))

        self.assertEqual(invoice.id, "inv-1")
        args, kwargs = self.collection.find_one_and_update.call_args
        self.assertEqual(args[0], {"ownerId": "u1", "month": 5, "year": 2026})
        self.assertIn("$setOnInsert", args[1])
        self.assertNotIn("id", args[1]["$set"])
        self.assertTrue(kwargs["upsert"])

    def test_invoice_upsert_retries_after_concurrent_insert(self):
        self.collection.find_one_and_update.side_effect = [
            DuplicateKeyError("E11000 duplicate key"),
            {"_id": "inv-theirs"},
        ]
        store = MongoInvoiceStore(self.database)

        invoice = store.upsert_invoice(Invoice(owner_id="u1", month=5, year=2026))

        self.assertEqual(invoice.id, "inv-theirs")
        self.assertEqual(self.collection.find_one_and_update.call_count, 2)

    def test_unique_indexes(self):
        MongoInvoiceStore(self.database).ensure_indexes()
        MongoOverdueChargeStore(self.database).ensure_indexes()

        for call in self.collection.create_index.call_args_list:
            self.assertTrue(call[1]["unique"])
        self.assertEqual(self.collection.create_index.call_count, 2)

    def test_charge_insert(self):
        store = MongoOverdueChargeStore(self.database)
        charge = store.insert_charge(make_charge())

        document = self.collection.insert_one.call_args[0][0]
        self.assertEqual(document["_id"], charge.id)
        self.assertEqual(document["invoiceId"], "inv-1")

    def test_malformed_documents_become_store_errors(self):
        self.collection.find_one.return_value = {"_id": "t1", "ownerId": "u1", "entryTime": "n/a"}
        store = MongoTransactionStore(self.database)

        with self.assertLogs("MongoTransactionStore", level="ERROR"):
            with self.assertRaises(StoreError) as ctx:
                store.get_transaction("t1")
        self.assertIsInstance(ctx.exception.cause, ValueError)

    def test_charge_update_requires_existing_charge(self):
        self.collection.replace_one.return_value.matched_count = 0
        store = MongoOverdueChargeStore(self.database)

        with self.assertRaises(NotFoundError):
            store.update_charge(make_charge(id="missing"))

        self.collection.replace_one.return_value.matched_count = 1
        updated = store.update_charge(make_charge(id="c1"))
        self.assertEqual(updated.id, "c1")
        args, kwargs = self.collection.replace_one.call_args
        self.assertEqual(args[0], {"_id": "c1"})
        self.assertNotIn("upsert", kwargs)

    def test_users_by_role(self):
        self.collection.find.return_value = [{"_id": "u1", "name": "Jane Doe", "role": "driver"}]
        users = MongoUserDirectory(self.database).list_users_by_role(UserRole.DRIVER)

        self.collection.find.assert_called_once_with({"role": "driver"})
        self.assertEqual(users[0].initials, "JD")

    def test_rate_lookup_warns_on_duplicates(self):
        docs = [
            {"_id": "r1", "parkingLotId": "LOT-1", "rateType": "NORMAL", "pricePerHour": 5},
            {"_id": "r2", "parkingLotId": "LOT-1", "rateType": "NORMAL", "pricePerHour": 6},
        ]
        self.collection.find.return_value.limit.return_value = docs

        with self.assertLogs("MongoRateLookup", level="WARNING"):
            rate = MongoRateLookup(self.database).get_active_rate("LOT-1", RateType.NORMAL)

        self.assertEqual(rate.id, "r1")

    def test_rate_lookup_miss(self):
        self.collection.find.return_value.limit.return_value = []
        self.assertIsNone(MongoRateLookup(self.database).get_active_rate("LOT-1", RateType.VIP))


if __name__ == '__main__':
    unittest.main()

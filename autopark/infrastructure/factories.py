# File: autopark/infrastructure/factories.py
"""
Factories that wire stores and services from a BillingConfig

- StoreFactory - builds the store bundle (in-memory or MongoDB)
- ServiceFactory - builds the application services on top of a bundle
"""

from dataclasses import dataclass
from typing import Optional, Callable
from datetime import datetime
import logging

import redis
from pymongo import MongoClient

from ..domain.pricing import ChargeCalculator
from ..domain.qr_security import QRSecurityCodec
from ..application.invoice_service import InvoiceGenerator
from ..application.overdue_service import OverdueProcessor
from ..application.parking_service import ParkingSessionService
from ..application.payment_service import PaymentService
from ..application.report_service import ReportService
from ..application.billing_service import BillingService
from .config import BillingConfig
from .mongo_repositories import (
    MongoTransactionStore, MongoInvoiceStore, MongoOverdueChargeStore,
    MongoUserDirectory, MongoRateLookup
)
from .repositories import (
    TransactionStore, InvoiceStore, OverdueChargeStore, UserDirectory, RateLookup,
    InMemoryTransactionStore, InMemoryInvoiceStore, InMemoryOverdueChargeStore,
    InMemoryUserDirectory, RateTable, CachingRateLookup
)


logger = logging.getLogger(__name__)


@dataclass
class StoreBundle:
    """The five stores the billing core consumes"""
    transactions: TransactionStore
    invoices: InvoiceStore
    charges: OverdueChargeStore
    users: UserDirectory
    rates: RateLookup


class StoreFactory:
    """Factory for creating store bundles"""

    @staticmethod
    def create_in_memory(config: Optional[BillingConfig] = None) -> StoreBundle:
        """Create in-memory stores; rates come from the config's rate table"""
        config = config or BillingConfig()
        return StoreBundle(
            transactions=InMemoryTransactionStore(),
            invoices=InMemoryInvoiceStore(),
            charges=InMemoryOverdueChargeStore(),
            users=InMemoryUserDirectory(),
            rates=RateTable.from_config(config.rates),
        )

    @staticmethod
    def create_mongo(config: BillingConfig, client: Optional[MongoClient] = None) -> StoreBundle:
        """
        Create MongoDB stores and make sure their indexes exist

        Rates configured in the YAML file take precedence over the
        parking_rates collection.
        """
        client = client or MongoClient(config.mongodb_url)
        database = client[config.mongodb_database]
        logger.info(f"Using MongoDB database '{config.mongodb_database}'")

        stores = [
            MongoTransactionStore(database),
            MongoInvoiceStore(database),
            MongoOverdueChargeStore(database),
            MongoUserDirectory(database),
        ]
        for store in stores:
            store.ensure_indexes()

        if config.rates:
            rates: RateLookup = RateTable.from_config(config.rates)
        else:
            rates = MongoRateLookup(database)

        transactions, invoices, charges, users = stores
        return StoreBundle(
            transactions=transactions,
            invoices=invoices,
            charges=charges,
            users=users,
            rates=StoreFactory.with_rate_cache(rates, config),
        )

    @staticmethod
    def with_rate_cache(rates: RateLookup, config: BillingConfig) -> RateLookup:
        """Wrap a rate lookup in the Redis cache when a Redis URL is configured"""
        if not config.redis_url:
            return rates
        logger.info("Caching rate lookups in Redis")
        return CachingRateLookup(
            rates,
            redis.Redis.from_url(config.redis_url),
            ttl_seconds=config.rate_cache_ttl_seconds
        )


class ServiceFactory:
    """Builds application services sharing one config, store bundle and clock"""

    def __init__(
        self,
        config: BillingConfig,
        stores: StoreBundle,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.config = config
        self.stores = stores
        self.clock = clock

    def calculator(self) -> ChargeCalculator:
        return ChargeCalculator(self.config.overnight_window)

    def codec(self) -> QRSecurityCodec:
        return QRSecurityCodec(
            self.config.qr_secret,
            acceptance_window=self.config.qr_acceptance_window,
            display_lifetime=self.config.qr_display_lifetime,
            clock=self.clock
        )

    def invoice_generator(self) -> InvoiceGenerator:
        return InvoiceGenerator(
            self.stores.transactions,
            self.stores.invoices,
            self.stores.users,
            due_period=self.config.invoice_due_period,
            clock=self.clock
        )

    def overdue_processor(self) -> OverdueProcessor:
        return OverdueProcessor(
            self.stores.invoices,
            self.stores.charges,
            self.stores.users,
            late_fee_percentage=self.config.late_fee_percentage,
            clock=self.clock
        )

    def parking_service(self) -> ParkingSessionService:
        return ParkingSessionService(
            self.stores.transactions,
            self.stores.rates,
            self.codec(),
            self.calculator(),
            clock=self.clock
        )

    def payment_service(self) -> PaymentService:
        return PaymentService(self.stores.invoices, self.stores.charges, clock=self.clock)

    def report_service(self) -> ReportService:
        return ReportService(self.stores.transactions)

    def billing_service(self) -> BillingService:
        return BillingService(
            self.calculator(),
            self.codec(),
            self.invoice_generator(),
            self.overdue_processor()
        )

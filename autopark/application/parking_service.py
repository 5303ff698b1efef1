# File: autopark/application/parking_service.py
"""
Parking Session Service

Records entries and exits from scanned QR tokens and prices each exit.

Use Case: Vehicle Entry
1. Validate the driver's ENTRY token
2. Return the vehicle's open transaction if it is already parked
3. Otherwise open an ACTIVE transaction

Use Case: Vehicle Exit
1. Validate the driver's EXIT token
2. Find the vehicle's ACTIVE transaction
3. Look up the lot's active rate and price the stay
4. Complete the transaction with duration and charge
"""

from typing import Optional, Callable, Tuple, Union
from datetime import datetime
from decimal import Decimal
import logging

from ..domain.exceptions import BillingError
from ..domain.models import ParkingTransaction, RateProfile, RateType
from ..domain.pricing import ChargeCalculator
from ..domain.qr_security import QRSecurityCodec, QRToken, QRType, ValidationResult
from ..infrastructure.repositories import TransactionStore, RateLookup
from .dtos import OperationResult, ErrorKind


_REJECTIONS = {
    ValidationResult.EXPIRED: (ErrorKind.EXPIRED, "QR code expired, please re-scan"),
    ValidationResult.INVALID_FORMAT: (ErrorKind.INVALID_FORMAT, "Not a valid parking QR code"),
    ValidationResult.INVALID_HASH: (ErrorKind.HASH_MISMATCH, "QR code signature does not match"),
}


class ParkingSessionService:
    """
    Application service for QR-driven entry and exit
    """

    def __init__(
        self,
        transaction_store: TransactionStore,
        rate_lookup: RateLookup,
        codec: QRSecurityCodec,
        calculator: Optional[ChargeCalculator] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.transaction_store = transaction_store
        self.rate_lookup = rate_lookup
        self.codec = codec
        self.calculator = calculator or ChargeCalculator()
        self.clock = clock
        self.logger = logging.getLogger(self.__class__.__name__)

    def _check_token(
        self,
        qr_string: str,
        expected_type: QRType
    ) -> Tuple[Optional[QRToken], Optional[OperationResult]]:
        validation, token = self.codec.validate_and_parse(qr_string)
        if not validation.is_valid:
            error, message = _REJECTIONS[validation]
            return None, OperationResult.fail(error, message)

        if token.qr_type != expected_type:
            return None, OperationResult.fail(
                ErrorKind.INVALID_ARGUMENT,
                f"Expected an {expected_type.value} code, got {token.qr_type.value}"
            )
        return token, None

    def process_entry(
        self,
        qr_string: str,
        lot_id: str,
        vehicle_id: str,
        rate_type: RateType = RateType.NORMAL
    ) -> OperationResult[ParkingTransaction]:
        """Open a transaction for a vehicle entering a lot"""
        self.logger.info(f"Processing entry of vehicle {vehicle_id} into lot {lot_id}")

        token, rejection = self._check_token(qr_string, QRType.ENTRY)
        if rejection is not None:
            self.logger.warning(f"Entry rejected for vehicle {vehicle_id}: {rejection.message}")
            return rejection

        try:
            existing = self.transaction_store.find_active_transaction(vehicle_id)
            if existing is not None:
                self.logger.info(f"Vehicle {vehicle_id} already parked ({existing.id})")
                return OperationResult.ok(existing, "Vehicle is already parked")

            transaction = ParkingTransaction(
                lot_id=lot_id,
                vehicle_id=vehicle_id,
                owner_id=token.user_id,
                vehicle_number=token.vehicle_number,
                entry_time=self.clock(),
                rate_type=rate_type,
            )
            saved = self.transaction_store.upsert_transaction(transaction)
        except BillingError as e:
            self.logger.error(f"Error recording entry: {e}", exc_info=True)
            return OperationResult.from_error(e)

        return OperationResult.ok(saved, "Entry recorded")

    def process_exit(self, qr_string: str, vehicle_id: str) -> OperationResult[ParkingTransaction]:
        """Complete and price the vehicle's open transaction"""
        self.logger.info(f"Processing exit of vehicle {vehicle_id}")

        token, rejection = self._check_token(qr_string, QRType.EXIT)
        if rejection is not None:
            self.logger.warning(f"Exit rejected for vehicle {vehicle_id}: {rejection.message}")
            return rejection

        try:
            transaction = self.transaction_store.find_active_transaction(vehicle_id)
            if transaction is None:
                return OperationResult.fail(
                    ErrorKind.NOT_FOUND, f"No active parking found for vehicle {vehicle_id}"
                )

            if transaction.owner_id != token.user_id:
                self.logger.warning(
                    f"Exit token of user {token.user_id} presented for vehicle {vehicle_id} "
                    f"owned by {transaction.owner_id}"
                )
                return OperationResult.fail(
                    ErrorKind.INVALID_ARGUMENT, "QR code does not belong to this vehicle's owner"
                )

            exit_time = self.clock()
            rate = self._rate_for(transaction.lot_id, transaction.rate_type)
            charge = self.calculator.calculate_charge(
                transaction.entry_time,
                exit_time,
                rate,
                is_vip=transaction.rate_type == RateType.VIP
            )
            transaction.complete(exit_time, charge)
            saved = self.transaction_store.upsert_transaction(transaction)
        except BillingError as e:
            self.logger.error(f"Error recording exit: {e}", exc_info=True)
            return OperationResult.from_error(e)

        self.logger.info(
            f"Vehicle {vehicle_id} exited after {saved.duration_minutes} minutes, "
            f"charged {saved.charge_amount}"
        )
        return OperationResult.ok(saved, "Exit recorded")

    def quote(
        self,
        lot_id: str,
        hours: Union[int, float, Decimal],
        rate_type: RateType = RateType.NORMAL
    ) -> OperationResult[Decimal]:
        """Preview the charge for a planned stay"""
        try:
            rate = self._rate_for(lot_id, rate_type)
        except BillingError as e:
            return OperationResult.from_error(e)

        if rate is None:
            return OperationResult.fail(ErrorKind.NOT_FOUND, f"No active rate for lot {lot_id}")

        try:
            estimate = self.calculator.estimate_charge_for_duration(
                hours, rate, is_vip=rate_type == RateType.VIP
            )
        except (ValueError, ArithmeticError) as e:
            return OperationResult.fail(ErrorKind.INVALID_ARGUMENT, f"Invalid duration {hours!r}: {e}")
        return OperationResult.ok(estimate)

    def _rate_for(self, lot_id: str, rate_type: RateType) -> Optional[RateProfile]:
        """The lot's active rate for the type, falling back to NORMAL"""
        rate = self.rate_lookup.get_active_rate(lot_id, rate_type)
        if rate is None and rate_type != RateType.NORMAL:
            rate = self.rate_lookup.get_active_rate(lot_id, RateType.NORMAL)
        if rate is None:
            self.logger.warning(f"No active {rate_type.value} rate for lot {lot_id}, charging 0")
        return rate

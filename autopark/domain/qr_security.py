# File: autopark/domain/qr_security.py
"""
Signed, time-limited QR tokens for lot entry and exit

Wire format (pipe-delimited):
    PARKTRACK|userId|vehicleNumber|timestamp|qrType|hash
Legacy tokens omit qrType and are read as ENTRY:
    PARKTRACK|userId|vehicleNumber|timestamp|hash

The hash is base64(SHA-256("userId|timestamp|secret")). Two lifetimes apply:
the driver's screen refreshes the code every 30 seconds, while a scanner
accepts a code for 2 minutes after it was issued.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union, Callable
from datetime import datetime, timedelta
from enum import Enum
import base64
import hashlib
import hmac
import logging


QR_PREFIX = "PARKTRACK"
FIELD_SEPARATOR = "|"

ACCEPTANCE_WINDOW = timedelta(minutes=2)
DISPLAY_LIFETIME = timedelta(seconds=30)
LOW_TIME_THRESHOLD_SECONDS = 10


class QRType(Enum):
    ENTRY = "ENTRY"
    EXIT = "EXIT"


class ValidationResult(Enum):
    """Outcome of validating a scanned token"""
    VALID = "VALID"
    EXPIRED = "EXPIRED"
    INVALID_FORMAT = "INVALID_FORMAT"
    INVALID_HASH = "INVALID_HASH"

    @property
    def is_valid(self) -> bool:
        return self is ValidationResult.VALID

    def __str__(self) -> str:
        return self.value


def _now_millis(now: datetime) -> int:
    return int(now.timestamp() * 1000)


@dataclass(frozen=True)
class QRToken:
    """
    Value Object: decoded QR payload
    """
    user_id: str
    vehicle_number: str
    timestamp: int
    security_hash: str
    qr_type: QRType = QRType.ENTRY

    @property
    def created_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp / 1000)

    def to_qr_string(self) -> str:
        return FIELD_SEPARATOR.join([
            QR_PREFIX,
            self.user_id,
            self.vehicle_number,
            str(self.timestamp),
            self.qr_type.value,
            self.security_hash,
        ])

    @classmethod
    def from_qr_string(cls, qr_string: str) -> Optional['QRToken']:
        """
        Parse a scanned string
        Returns None for anything that is not a 5- or 6-field PARKTRACK token.
        """
        if not qr_string:
            return None

        parts = qr_string.split(FIELD_SEPARATOR)
        if len(parts) not in (5, 6) or parts[0] != QR_PREFIX:
            return None

        if not (parts[3].isascii() and parts[3].isdigit()):
            return None
        timestamp = int(parts[3])

        if len(parts) == 6:
            try:
                qr_type = QRType(parts[4])
            except ValueError:
                return None
            security_hash = parts[5]
        else:
            qr_type = QRType.ENTRY
            security_hash = parts[4]

        return cls(
            user_id=parts[1],
            vehicle_number=parts[2],
            timestamp=timestamp,
            security_hash=security_hash,
            qr_type=qr_type
        )


class QRSecurityCodec:
    """
    Issues and validates QR tokens signed with a shared secret
    """

    def __init__(
        self,
        secret: str,
        acceptance_window: timedelta = ACCEPTANCE_WINDOW,
        display_lifetime: timedelta = DISPLAY_LIFETIME,
        clock: Callable[[], datetime] = datetime.now
    ):
        if not secret:
            raise ValueError("QR secret cannot be empty")
        self._secret = secret
        self.acceptance_window = acceptance_window
        self.display_lifetime = display_lifetime
        self.clock = clock
        self.logger = logging.getLogger(self.__class__.__name__)

    def security_hash(self, user_id: str, timestamp: int) -> str:
        payload = f"{user_id}{FIELD_SEPARATOR}{timestamp}{FIELD_SEPARATOR}{self._secret}"
        digest = hashlib.sha256(payload.encode("utf-8")).digest()
        return base64.b64encode(digest).decode("ascii")

    def create_token(
        self,
        user_id: str,
        vehicle_number: str,
        qr_type: Union[QRType, str] = QRType.ENTRY
    ) -> QRToken:
        """Issue a token stamped with the current time"""
        if not user_id:
            raise ValueError("User id cannot be empty")
        for value in (user_id, vehicle_number):
            if FIELD_SEPARATOR in value:
                raise ValueError(f"QR fields cannot contain '{FIELD_SEPARATOR}': {value}")

        timestamp = _now_millis(self.clock())
        token = QRToken(
            user_id=user_id,
            vehicle_number=vehicle_number,
            timestamp=timestamp,
            security_hash=self.security_hash(user_id, timestamp),
            qr_type=QRType(qr_type)
        )
        self.logger.debug(f"Issued {token.qr_type.value} token for user {user_id}")
        return token

    def is_expired(self, timestamp: int) -> bool:
        elapsed_ms = _now_millis(self.clock()) - timestamp
        return elapsed_ms > self.acceptance_window.total_seconds() * 1000

    def verify_hash(self, token: QRToken) -> bool:
        expected = self.security_hash(token.user_id, token.timestamp)
        return hmac.compare_digest(expected.encode("utf-8"), token.security_hash.encode("utf-8"))

    def validate(self, token: Union[QRToken, str]) -> ValidationResult:
        """Expiry is checked before the signature"""
        return self.validate_and_parse(token)[0]

    def validate_and_parse(
        self,
        token: Union[QRToken, str]
    ) -> Tuple[ValidationResult, Optional[QRToken]]:
        if isinstance(token, str):
            parsed = QRToken.from_qr_string(token)
            if parsed is None:
                self.logger.warning("Rejected QR token with invalid format")
                return ValidationResult.INVALID_FORMAT, None
            token = parsed

        if self.is_expired(token.timestamp):
            self.logger.info(f"Rejected expired QR token for user {token.user_id}")
            return ValidationResult.EXPIRED, token

        if not self.verify_hash(token):
            self.logger.warning(
                f"QR hash mismatch for user {token.user_id}, vehicle {token.vehicle_number}: "
                "possible tampering"
            )
            return ValidationResult.INVALID_HASH, token

        return ValidationResult.VALID, token

    # ------------------------------------------------------------------
    # Display countdown
    # ------------------------------------------------------------------

    def seconds_remaining(self, token: QRToken) -> int:
        """Seconds left on the driver's on-screen countdown, never negative"""
        elapsed_ms = _now_millis(self.clock()) - token.timestamp
        remaining_ms = self.display_lifetime.total_seconds() * 1000 - elapsed_ms
        return max(0, int(remaining_ms // 1000))

    def progress(self, countdown: int) -> float:
        total = self.display_lifetime.total_seconds()
        if total <= 0:
            return 0.0
        return min(1.0, max(0.0, countdown / total))

    @staticmethod
    def is_low_time_warning(countdown: int) -> bool:
        return 0 < countdown <= LOW_TIME_THRESHOLD_SECONDS

    @staticmethod
    def format_countdown(countdown: int) -> str:
        if countdown > 60:
            return f"{countdown // 60}m {countdown % 60}s"
        if countdown > 0:
            return f"{countdown}s"
        return "Expired"

# File: autopark/infrastructure/config.py
"""
Billing configuration

Values come from, in increasing priority:
1. Defaults below
2. A YAML file (see config.example.yaml)
3. AUTOPARK_* environment variables
"""

from dataclasses import dataclass, field, fields
from typing import Optional, Dict, Any, List
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
import logging
import os

import yaml

from ..domain.models import OvernightWindow, to_decimal


logger = logging.getLogger(__name__)

ENV_PREFIX = "AUTOPARK_"


@dataclass
class BillingConfig:
    """Tunable billing constants and store connection settings"""
    late_fee_percentage: Decimal = Decimal('10.0')
    invoice_due_days: int = 15
    overnight_start_hour: int = 20
    overnight_end_hour: int = 8
    qr_secret: str = ""
    qr_acceptance_seconds: int = 120
    qr_display_seconds: int = 30
    mongodb_url: str = "mongodb://localhost:27017/"
    mongodb_database: str = "autopark"
    redis_url: Optional[str] = None
    rate_cache_ttl_seconds: int = 300
    rates: List[Dict[str, Any]] = field(default_factory=list)

    def __post_init__(self):
        self.late_fee_percentage = to_decimal(self.late_fee_percentage)
        if self.late_fee_percentage < 0:
            raise ValueError("late_fee_percentage cannot be negative")
        if self.invoice_due_days < 0:
            raise ValueError("invoice_due_days cannot be negative")
        if self.qr_acceptance_seconds <= 0 or self.qr_display_seconds <= 0:
            raise ValueError("QR lifetimes must be positive")

    @property
    def overnight_window(self) -> OvernightWindow:
        return OvernightWindow(self.overnight_start_hour, self.overnight_end_hour)

    @property
    def invoice_due_period(self) -> timedelta:
        return timedelta(days=self.invoice_due_days)

    @property
    def qr_acceptance_window(self) -> timedelta:
        return timedelta(seconds=self.qr_acceptance_seconds)

    @property
    def qr_display_lifetime(self) -> timedelta:
        return timedelta(seconds=self.qr_display_seconds)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BillingConfig':
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {sorted(unknown)}")
        return cls(**{key: value for key, value in data.items() if key in known})

    @classmethod
    def from_yaml(cls, path: Path) -> 'BillingConfig':
        return cls.from_dict(_read_yaml(path))

    @classmethod
    def load(
        cls,
        path: Optional[Path] = None,
        environ: Optional[Dict[str, str]] = None
    ) -> 'BillingConfig':
        """Defaults, then the YAML file if given, then environment overrides"""
        environ = os.environ if environ is None else environ
        path = path or environ.get(f"{ENV_PREFIX}CONFIG")

        data = _read_yaml(Path(path)) if path else {}

        for f in fields(cls):
            if f.name == "rates":
                continue
            raw = environ.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is not None:
                data[f.name] = _coerce(f.name, raw)

        return cls.from_dict(data)


def _read_yaml(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    logger.info(f"Loaded billing config from {path}")
    return data


_INT_FIELDS = {
    "invoice_due_days", "overnight_start_hour", "overnight_end_hour",
    "qr_acceptance_seconds", "qr_display_seconds", "rate_cache_ttl_seconds",
}


def _coerce(name: str, raw: str) -> Any:
    if name in _INT_FIELDS:
        return int(raw)
    if name == "late_fee_percentage":
        return Decimal(raw)
    return raw

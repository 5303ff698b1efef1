# File: autopark/domain/pricing.py
"""
Charge calculation for parking stays

ChargeCalculator is a stateless domain service. It selects one pricing tier
for a stay, applies the VIP multiplier and then the min/max clamps:

1. Overnight flat price - entry and exit hours both inside the overnight window
2. Daily tier - stays of a day or more, priced per day plus a pro-rata remainder
3. Hourly tier - everything else

The estimator used for previews shares the tier, VIP and rounding rules but
knows nothing about clock times, so it skips overnight detection and the
per-day cap.
"""

from typing import Optional, Union
from datetime import datetime
from decimal import Decimal
import logging

from .models import (
    RateProfile, TimeRange, OvernightWindow,
    ZERO, HOURS_PER_DAY, to_decimal, round_money
)


ONE = Decimal('1')
HUNDRED = Decimal('100')


class ChargeCalculator:
    """
    Domain Service: turns a parking interval and a rate profile into a charge
    """

    def __init__(self, overnight_window: Optional[OvernightWindow] = None):
        self.overnight_window = overnight_window or OvernightWindow()
        self.logger = logging.getLogger(self.__class__.__name__)

    def calculate_charge(
        self,
        entry_time: datetime,
        exit_time: datetime,
        rate: Optional[RateProfile],
        is_vip: bool = False
    ) -> Decimal:
        """
        Calculate the charge for a completed stay
        Returns 0.00 when no rate is supplied.
        """
        if rate is None:
            return round_money(ZERO)

        time_range = TimeRange(entry_time, exit_time)
        duration_hours = time_range.duration_hours
        duration_days = time_range.duration_days

        if time_range.is_overnight(self.overnight_window) and rate.overnight_price > ZERO:
            self.logger.debug(f"Overnight flat rate for {time_range}")
            charge = rate.overnight_price
        elif duration_days >= ONE and rate.price_per_day > ZERO:
            charge = self._daily_charge(duration_hours, rate)
        else:
            charge = duration_hours * rate.price_per_hour

        charge = self._apply_vip_multiplier(charge, rate, is_vip)
        charge = self._apply_minimum(charge, rate)

        # a zero cap means the profile has no per-day maximum
        if duration_days > ONE and ZERO < rate.max_charge_per_day < charge:
            charge = rate.max_charge_per_day

        return round_money(charge)

    def estimate_charge_for_duration(
        self,
        hours: Union[int, float, Decimal],
        rate: Optional[RateProfile],
        is_vip: bool = False
    ) -> Decimal:
        """
        Estimate a charge for a planned duration, for pre-authorization previews
        """
        if rate is None:
            return round_money(ZERO)

        duration_hours = to_decimal(hours)
        if duration_hours < ZERO:
            raise ValueError(f"Duration cannot be negative: {hours}")
        duration_days = duration_hours / HOURS_PER_DAY

        if duration_days >= ONE and rate.price_per_day > ZERO:
            charge = self._daily_charge(duration_hours, rate)
        elif rate.price_per_hour > ZERO:
            charge = duration_hours * rate.price_per_hour
        else:
            charge = rate.min_charge

        charge = self._apply_vip_multiplier(charge, rate, is_vip)
        charge = self._apply_minimum(charge, rate)

        return round_money(charge)

    @staticmethod
    def calculate_late_fee(
        original_amount: Decimal,
        overdue_days: int,
        late_fee_percentage: Decimal
    ) -> Decimal:
        """Linear late fee: the percentage of the original amount, once per overdue day"""
        daily_fee = to_decimal(original_amount) * to_decimal(late_fee_percentage) / HUNDRED
        return round_money(daily_fee * overdue_days)

    @staticmethod
    def _daily_charge(duration_hours: Decimal, rate: RateProfile) -> Decimal:
        full_days = int(duration_hours / HOURS_PER_DAY)
        remaining_hours = duration_hours - full_days * HOURS_PER_DAY
        return full_days * rate.price_per_day + remaining_hours * (rate.price_per_day / HOURS_PER_DAY)

    @staticmethod
    def _apply_vip_multiplier(charge: Decimal, rate: RateProfile, is_vip: bool) -> Decimal:
        if is_vip and rate.vip_multiplier > ONE:
            return charge * rate.vip_multiplier
        return charge

    @staticmethod
    def _apply_minimum(charge: Decimal, rate: RateProfile) -> Decimal:
        if charge < rate.min_charge:
            return rate.min_charge
        return charge

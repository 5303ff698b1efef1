# File: autopark/application/report_service.py
"""
Activity and revenue reports over the transaction ledger
"""

from typing import Optional, List
from datetime import datetime
import logging

from ..domain.exceptions import BillingError
from ..domain.models import ParkingTransaction, RateType, ZERO, round_money
from ..infrastructure.repositories import TransactionStore
from .dtos import OperationResult, MonthlyReportDTO, RevenueStatsDTO
from .invoice_service import month_bounds


class ReportService:

    def __init__(self, transaction_store: TransactionStore):
        self.transaction_store = transaction_store
        self.logger = logging.getLogger(self.__class__.__name__)

    def monthly_report(
        self,
        month: int,
        year: int,
        lot_id: Optional[str] = None
    ) -> OperationResult[MonthlyReportDTO]:
        """
        Summarize a month of parkings, optionally for a single lot

        Every transaction that entered during the month is counted; revenue
        and the average charge come from the completed ones only.
        """
        try:
            from_date, _, next_month = month_bounds(month, year)
            transactions = self.transaction_store.list_transactions_in_range(
                from_date, next_month, lot_id
            )
        except BillingError as e:
            self.logger.error(f"Error building report for {month:02d}/{year}: {e}", exc_info=True)
            return OperationResult.from_error(e)

        completed = [tx for tx in transactions if tx.is_completed]
        revenue = self._revenue(completed)
        average = round_money(revenue / len(completed)) if completed else round_money(ZERO)

        return OperationResult.ok(MonthlyReportDTO(
            month=month,
            year=year,
            total_parkings=len(transactions),
            total_revenue=revenue,
            total_owners=len({tx.owner_id for tx in transactions}),
            total_vehicles=len({tx.vehicle_id for tx in transactions}),
            average_charge_per_parking=average,
            lot_id=lot_id,
        ))

    def revenue_by_rate_type(
        self,
        from_time: datetime,
        to_time: datetime,
        lot_id: Optional[str] = None
    ) -> OperationResult[RevenueStatsDTO]:
        """Completed revenue in [from_time, to_time) grouped by rate type"""
        try:
            transactions = self.transaction_store.list_transactions_in_range(
                from_time, to_time, lot_id
            )
        except BillingError as e:
            self.logger.error(f"Error building revenue stats: {e}", exc_info=True)
            return OperationResult.from_error(e)

        completed = [tx for tx in transactions if tx.is_completed]
        by_rate_type = {
            rate_type.value: self._revenue([tx for tx in completed if tx.rate_type == rate_type])
            for rate_type in RateType
        }

        return OperationResult.ok(RevenueStatsDTO(
            total_revenue=self._revenue(completed),
            by_rate_type=by_rate_type,
        ))

    @staticmethod
    def _revenue(transactions: List[ParkingTransaction]):
        return round_money(sum((tx.charge_amount for tx in transactions), ZERO))

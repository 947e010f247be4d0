"""Report schemas produced by the aggregation engine."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from posengine.schemas.order import Order


class Period(str, Enum):
    """Named reporting windows."""

    TODAY = "today"
    YESTERDAY = "yesterday"
    THIS_WEEK = "this-week"
    LAST_WEEK = "last-week"
    THIS_MONTH = "this-month"
    LAST_MONTH = "last-month"
    LAST_7_DAYS = "last-7-days"
    LAST_30_DAYS = "last-30-days"
    CUSTOM = "custom"


class DateRange(BaseModel):
    """Half-open interval ``[start, end)``."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    label: str

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


class SalesSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    range: DateRange
    count: int
    total: Decimal
    orders: Tuple[Order, ...]


class PeriodComparison(BaseModel):
    model_config = ConfigDict(frozen=True)

    current: SalesSummary
    comparison: SalesSummary
    sales_change: float
    orders_change: float


class TopItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    quantity: int


class TrendPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    day: date
    date_label: str
    total: Decimal


class DailySales(BaseModel):
    """One day of the day-over-day comparison table."""

    model_config = ConfigDict(frozen=True)

    day: date
    date_label: str
    sales: Decimal
    orders: int
    sales_change: float
    orders_change: float


class PeakHour(BaseModel):
    model_config = ConfigDict(frozen=True)

    day: str
    hour: int
    order_count: int
    total_sales: Decimal
    average_order_value: Decimal


class ItemProfitability(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_id: int
    item_name: str
    units_sold: int
    revenue: Decimal
    cost: Decimal
    profit: Decimal
    profit_margin: float


class StaffPerformance(BaseModel):
    model_config = ConfigDict(frozen=True)

    cashier_name: str
    orders_processed: int
    total_sales: Decimal
    average_order_value: Decimal


class SalesReport(BaseModel):
    """API view of a sales summary without the order bodies."""

    period: Optional[Period]
    start: datetime
    end: datetime
    label: str
    count: int
    total: Decimal
    order_ids: List[int]


class ComparisonReport(BaseModel):
    current: SalesReport
    comparison: SalesReport
    sales_change: float
    orders_change: float


class SyncStatus(BaseModel):
    """State of a terminal's refresh controller."""

    status: str
    generation: int
    applied_generation: int
    order_count: int
    last_success_at: Optional[datetime] = None
    last_error: Optional[str] = None
    consecutive_failures: int = 0
    poll_interval_seconds: float

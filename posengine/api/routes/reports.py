"""Report routes.

Every report is computed from the refresh controller's current snapshot,
so all dashboards on a terminal agree with each other between polls.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request, status

from posengine.api.deps import ControllerDep
from posengine.core.rate_limit import limiter
from posengine.schemas.reports import (
    ComparisonReport,
    DailySales,
    DateRange,
    ItemProfitability,
    PeakHour,
    Period,
    SalesReport,
    SalesSummary,
    StaffPerformance,
    TopItem,
    TrendPoint,
)
from posengine.services import aggregation

router = APIRouter()

PERIOD_QUERY = Query(Period.TODAY, description="Named period, or 'custom' with start and end")
START_QUERY = Query(None, description="Custom period start (inclusive)")
END_QUERY = Query(None, description="Custom period end (exclusive)")


def _resolve(period: Period, start: Optional[datetime], end: Optional[datetime]) -> DateRange:
    try:
        return aggregation.resolve_date_range(period, start=start, end=end)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


def _sales_report(period: Optional[Period], summary: SalesSummary) -> SalesReport:
    return SalesReport(
        period=period,
        start=summary.range.start,
        end=summary.range.end,
        label=summary.range.label,
        count=summary.count,
        total=summary.total,
        order_ids=[order.id for order in summary.orders],
    )


@router.get("/range", response_model=DateRange)
@limiter.limit("120/minute")
async def get_date_range(
    request: Request,
    period: Period = PERIOD_QUERY,
    start: Optional[datetime] = START_QUERY,
    end: Optional[datetime] = END_QUERY,
):
    """Resolve a period to its half-open range in the business time zone."""
    return _resolve(period, start, end)


@router.get("/sales", response_model=SalesReport)
@limiter.limit("60/minute")
async def get_sales(
    request: Request,
    controller: ControllerDep,
    period: Period = PERIOD_QUERY,
    start: Optional[datetime] = START_QUERY,
    end: Optional[datetime] = END_QUERY,
):
    """Realized sales count and total for a period."""
    snapshot = controller.snapshot
    summary = aggregation.sales_for_period(snapshot.orders, _resolve(period, start, end), snapshot.catalog)
    return _sales_report(period, summary)


@router.get("/comparison", response_model=ComparisonReport)
@limiter.limit("60/minute")
async def get_comparison(
    request: Request,
    controller: ControllerDep,
    period: Period = PERIOD_QUERY,
    start: Optional[datetime] = START_QUERY,
    end: Optional[datetime] = END_QUERY,
):
    """Period against its comparison period with percentage changes.

    The comparison block names its partner period; a plain preceding
    window has none.
    """
    _resolve(period, start, end)
    snapshot = controller.snapshot
    result = aggregation.comparison_for(snapshot.orders, period, snapshot.catalog, start=start, end=end)
    return ComparisonReport(
        current=_sales_report(period, result.current),
        comparison=_sales_report(aggregation.COMPARISON_PERIODS.get(period), result.comparison),
        sales_change=result.sales_change,
        orders_change=result.orders_change,
    )


@router.get("/top-items", response_model=List[TopItem])
@limiter.limit("60/minute")
async def get_top_items(
    request: Request,
    controller: ControllerDep,
    period: Period = PERIOD_QUERY,
    start: Optional[datetime] = START_QUERY,
    end: Optional[datetime] = END_QUERY,
    limit: int = Query(5, ge=1, le=100),
):
    snapshot = controller.snapshot
    return aggregation.top_items(snapshot.orders, _resolve(period, start, end), snapshot.catalog, limit=limit)


@router.get("/trend", response_model=List[TrendPoint])
@limiter.limit("60/minute")
async def get_trend(
    request: Request,
    controller: ControllerDep,
    period: Period = Query(Period.LAST_7_DAYS),
    start: Optional[datetime] = START_QUERY,
    end: Optional[datetime] = END_QUERY,
    max_points: int = Query(7, ge=1, le=366),
):
    """Daily realized sales, oldest first."""
    snapshot = controller.snapshot
    return aggregation.trend_series(
        snapshot.orders, _resolve(period, start, end), snapshot.catalog, max_points=max_points
    )


@router.get("/daily", response_model=List[DailySales])
@limiter.limit("60/minute")
async def get_daily_comparison(
    request: Request,
    controller: ControllerDep,
    days: int = Query(14, ge=1, le=90),
):
    """Day-over-day sales for the last ``days`` days."""
    snapshot = controller.snapshot
    return aggregation.daily_comparison(snapshot.orders, snapshot.catalog, days=days)


@router.get("/peak-hours", response_model=List[PeakHour])
@limiter.limit("60/minute")
async def get_peak_hours(
    request: Request,
    controller: ControllerDep,
    period: Period = Query(Period.LAST_30_DAYS),
    start: Optional[datetime] = START_QUERY,
    end: Optional[datetime] = END_QUERY,
):
    snapshot = controller.snapshot
    return aggregation.peak_hours(snapshot.orders, _resolve(period, start, end), snapshot.catalog)


@router.get("/profitability", response_model=List[ItemProfitability])
@limiter.limit("60/minute")
async def get_item_profitability(
    request: Request,
    controller: ControllerDep,
    period: Period = Query(Period.THIS_MONTH),
    start: Optional[datetime] = START_QUERY,
    end: Optional[datetime] = END_QUERY,
):
    snapshot = controller.snapshot
    return aggregation.item_profitability(snapshot.orders, _resolve(period, start, end), snapshot.catalog)


@router.get("/staff", response_model=List[StaffPerformance])
@limiter.limit("60/minute")
async def get_staff_performance(
    request: Request,
    controller: ControllerDep,
    period: Period = Query(Period.THIS_MONTH),
    start: Optional[datetime] = START_QUERY,
    end: Optional[datetime] = END_QUERY,
):
    snapshot = controller.snapshot
    return aggregation.staff_performance(snapshot.orders, _resolve(period, start, end), snapshot.catalog)

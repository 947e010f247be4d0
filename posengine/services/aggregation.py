"""Sales aggregation engine.

Pure functions over a snapshot of orders plus a catalog. Nothing here
touches the store or mutates its inputs, so every dashboard can call the
same function on the same snapshot and get the same numbers.

Only realized sales (``served`` and ``completed``) count toward totals,
rankings and trends. Line values are priced from the catalog; items that
have since been removed from the menu are worth zero rather than an
error, so historical reports keep rendering.

Calendar boundaries (day, week, month) are computed in the business time
zone and every range is half-open: ``start <= created_at < end``.
"""

from collections import OrderedDict
from datetime import date, datetime, time, timedelta, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Tuple, Union

from posengine.core.clock import as_utc, utcnow
from posengine.core.config import settings
from posengine.schemas.order import REALIZED_STATUSES, Order
from posengine.schemas.reports import (
    DailySales,
    DateRange,
    ItemProfitability,
    PeakHour,
    Period,
    PeriodComparison,
    SalesSummary,
    StaffPerformance,
    TopItem,
    TrendPoint,
)
from posengine.services.catalog import CatalogSnapshot

PeriodLike = Union[Period, str, DateRange]

PERIOD_LABELS: Dict[Period, str] = {
    Period.TODAY: "Today",
    Period.YESTERDAY: "Yesterday",
    Period.THIS_WEEK: "This Week",
    Period.LAST_WEEK: "Last Week",
    Period.THIS_MONTH: "This Month",
    Period.LAST_MONTH: "Last Month",
    Period.LAST_7_DAYS: "Last 7 Days",
    Period.LAST_30_DAYS: "Last 30 Days",
}

# Canonical comparison partner of each period. Periods not listed are
# compared against the window immediately before them.
COMPARISON_PERIODS: Dict[Period, Period] = {
    Period.TODAY: Period.YESTERDAY,
    Period.THIS_WEEK: Period.LAST_WEEK,
    Period.THIS_MONTH: Period.LAST_MONTH,
}

_MONTHLY = {Period.THIS_MONTH, Period.LAST_MONTH}
_CENT = Decimal("0.01")
_TENTH = Decimal("0.1")


# ----------------------------------------------------------------------
# Date ranges
# ----------------------------------------------------------------------

def _midnight(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def _month_start(day: date, months_back: int = 0) -> date:
    month_index = day.year * 12 + (day.month - 1) - months_back
    return date(month_index // 12, month_index % 12 + 1, 1)


def _long_label(moment: datetime) -> str:
    return f"{moment:%b} {moment.day}, {moment.year}"


def _to_local(value: Union[date, datetime], tz: tzinfo) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=tz)
        return value.astimezone(tz)
    return _midnight(value, tz)


def resolve_date_range(
    period: Union[Period, str],
    now: Optional[datetime] = None,
    start: Optional[Union[date, datetime]] = None,
    end: Optional[Union[date, datetime]] = None,
    tz: Optional[tzinfo] = None,
    week_start: Optional[int] = None,
) -> DateRange:
    """Resolve a named period to a half-open ``[start, end)`` range.

    ``custom`` requires *start* and *end*; plain dates mean local midnight
    and naive datetimes are read as business-local time.
    *now* defaults to the current time; weeks begin on *week_start*
    (Python weekday numbering, defaulting to the configured first weekday).
    """
    period = Period(period)
    tz = tz or settings.tz
    week_start = settings.week_start_day if week_start is None else week_start

    if period is Period.CUSTOM:
        if start is None or end is None:
            raise ValueError("A custom period needs both start and end")
        range_start = _to_local(start, tz)
        range_end = _to_local(end, tz)
        if range_end <= range_start:
            raise ValueError("Custom period end must be after its start")
        label = f"{_long_label(range_start)} to {_long_label(range_end)}"
        return DateRange(start=range_start, end=range_end, label=label)

    today = as_utc(now or utcnow()).astimezone(tz).date()
    one_day = timedelta(days=1)

    if period is Period.TODAY:
        first, last = today, today + one_day
    elif period is Period.YESTERDAY:
        first, last = today - one_day, today
    elif period in (Period.THIS_WEEK, Period.LAST_WEEK):
        week_begin = today - timedelta(days=(today.weekday() - week_start) % 7)
        if period is Period.LAST_WEEK:
            week_begin -= timedelta(days=7)
        first, last = week_begin, week_begin + timedelta(days=7)
    elif period is Period.THIS_MONTH:
        first, last = _month_start(today), _month_start(today, -1)
    elif period is Period.LAST_MONTH:
        first, last = _month_start(today, 1), _month_start(today)
    elif period is Period.LAST_7_DAYS:
        first, last = today - timedelta(days=6), today + one_day
    else:  # last-30-days
        first, last = today - timedelta(days=29), today + one_day

    return DateRange(start=_midnight(first, tz), end=_midnight(last, tz), label=PERIOD_LABELS[period])


def previous_range(date_range: DateRange, monthly: bool = False) -> DateRange:
    """The window of equal length ending where *date_range* starts."""
    tz = date_range.start.tzinfo
    start, end = date_range.start, date_range.end
    if monthly and start.day == 1 and end.day == 1:
        months = (end.year * 12 + end.month) - (start.year * 12 + start.month)
        first = _month_start(start.date(), months)
        prev_start = _midnight(first, tz)
    elif start.time() == time.min and end.time() == time.min:
        days = (end.date() - start.date()).days
        prev_start = _midnight(start.date() - timedelta(days=days), tz)
    else:
        prev_start = start - (end - start)
    return DateRange(start=prev_start, end=start, label=f"Previous {date_range.label}")


def _range_for(
    period: PeriodLike,
    now: Optional[datetime] = None,
    start: Optional[Union[date, datetime]] = None,
    end: Optional[Union[date, datetime]] = None,
    tz: Optional[tzinfo] = None,
    week_start: Optional[int] = None,
) -> DateRange:
    if isinstance(period, DateRange):
        return period
    return resolve_date_range(period, now=now, start=start, end=end, tz=tz, week_start=week_start)


# ----------------------------------------------------------------------
# Core aggregates
# ----------------------------------------------------------------------

def order_value(order: Order, catalog: CatalogSnapshot) -> Decimal:
    """Order value at current catalog prices; unknown items count as zero."""
    return sum(
        (catalog.price_of(item_id) * quantity for item_id, quantity in order.items.items()),
        Decimal("0"),
    )


def realized_orders(orders: Iterable[Order], date_range: DateRange) -> List[Order]:
    return [
        order
        for order in orders
        if order.status in REALIZED_STATUSES and date_range.contains(as_utc(order.created_at))
    ]


def percent_change(current: Union[Decimal, int], previous: Union[Decimal, int]) -> float:
    """Percentage change rounded to one decimal place.

    With no previous value the change is 100 when there is anything now,
    else 0.
    """
    current = Decimal(current)
    previous = Decimal(previous)
    if previous > 0:
        change = (current - previous) / previous * 100
        return float(change.quantize(_TENTH, rounding=ROUND_HALF_UP))
    return 100.0 if current > 0 else 0.0


def sales_for_period(
    orders: Iterable[Order],
    period: PeriodLike,
    catalog: CatalogSnapshot,
    **range_kwargs,
) -> SalesSummary:
    """Count and total of realized sales inside the period."""
    date_range = _range_for(period, **range_kwargs)
    matched = realized_orders(orders, date_range)
    total = sum((order_value(order, catalog) for order in matched), Decimal("0"))
    return SalesSummary(range=date_range, count=len(matched), total=total, orders=tuple(matched))


def comparison_for(
    orders: Iterable[Order],
    period: Union[Period, str],
    catalog: CatalogSnapshot,
    **range_kwargs,
) -> PeriodComparison:
    """Compare a period with its canonical predecessor.

    today vs yesterday, this-week vs last-week and this-month vs
    last-month; any other period is compared with the window of the same
    length right before it (the calendar month before, for last-month).
    """
    orders = list(orders)
    period = Period(period)
    current_range = resolve_date_range(period, **range_kwargs)
    partner = COMPARISON_PERIODS.get(period)
    if partner is not None:
        range_kwargs.pop("start", None)
        range_kwargs.pop("end", None)
        comparison_range = resolve_date_range(partner, **range_kwargs)
    else:
        comparison_range = previous_range(current_range, monthly=period in _MONTHLY)

    current = sales_for_period(orders, current_range, catalog)
    comparison = sales_for_period(orders, comparison_range, catalog)
    return PeriodComparison(
        current=current,
        comparison=comparison,
        sales_change=percent_change(current.total, comparison.total),
        orders_change=percent_change(current.count, comparison.count),
    )


def top_items(
    orders: Iterable[Order],
    period: PeriodLike,
    catalog: CatalogSnapshot,
    limit: int = 5,
    **range_kwargs,
) -> List[TopItem]:
    """Best sellers by quantity; ties keep first-encountered order."""
    date_range = _range_for(period, **range_kwargs)
    quantities: "OrderedDict[str, int]" = OrderedDict()
    for order in realized_orders(orders, date_range):
        for item_id, quantity in order.items.items():
            name = catalog.name_of(item_id)
            quantities[name] = quantities.get(name, 0) + quantity
    ranked = sorted(quantities.items(), key=lambda pair: pair[1], reverse=True)
    return [TopItem(name=name, quantity=quantity) for name, quantity in ranked[:limit]]


def _local_day(order: Order, tz: tzinfo) -> date:
    return as_utc(order.created_at).astimezone(tz).date()


def _day_label(day: date) -> str:
    return f"{day:%b} {day.day}"


def trend_series(
    orders: Iterable[Order],
    period: PeriodLike,
    catalog: CatalogSnapshot,
    max_points: int = 7,
    **range_kwargs,
) -> List[TrendPoint]:
    """Realized sales per calendar day, oldest first, last *max_points* days."""
    date_range = _range_for(period, **range_kwargs)
    tz = date_range.start.tzinfo
    buckets: Dict[date, Decimal] = {}
    for order in realized_orders(orders, date_range):
        day = _local_day(order, tz)
        buckets[day] = buckets.get(day, Decimal("0")) + order_value(order, catalog)
    days = sorted(buckets)[-max_points:] if max_points > 0 else []
    return [TrendPoint(day=day, date_label=_day_label(day), total=buckets[day]) for day in days]


# ----------------------------------------------------------------------
# Dashboard analytics
# ----------------------------------------------------------------------

def daily_comparison(
    orders: Iterable[Order],
    catalog: CatalogSnapshot,
    days: int = 14,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[DailySales]:
    """Day-over-day realized sales for the last *days* days, zero-filled."""
    tz = tz or settings.tz
    today = as_utc(now or utcnow()).astimezone(tz).date()
    first = today - timedelta(days=days - 1)
    window = DateRange(start=_midnight(first, tz), end=_midnight(today + timedelta(days=1), tz), label="Daily")

    totals: Dict[date, Tuple[Decimal, int]] = {
        first + timedelta(days=offset): (Decimal("0"), 0) for offset in range(days)
    }
    for order in realized_orders(orders, window):
        day = _local_day(order, tz)
        sales, count = totals[day]
        totals[day] = (sales + order_value(order, catalog), count + 1)

    result: List[DailySales] = []
    previous: Optional[Tuple[Decimal, int]] = None
    for day in sorted(totals):
        sales, count = totals[day]
        result.append(DailySales(
            day=day,
            date_label=f"{day:%a}, {_day_label(day)}",
            sales=sales,
            orders=count,
            sales_change=percent_change(sales, previous[0]) if previous else 0.0,
            orders_change=percent_change(count, previous[1]) if previous else 0.0,
        ))
        previous = (sales, count)
    return result


def peak_hours(
    orders: Iterable[Order],
    period: PeriodLike,
    catalog: CatalogSnapshot,
    **range_kwargs,
) -> List[PeakHour]:
    """Realized orders grouped by weekday and hour, busiest first."""
    date_range = _range_for(period, **range_kwargs)
    tz = date_range.start.tzinfo
    slots: "OrderedDict[Tuple[str, int], Tuple[int, Decimal]]" = OrderedDict()
    for order in realized_orders(orders, date_range):
        local = as_utc(order.created_at).astimezone(tz)
        key = (f"{local:%A}", local.hour)
        count, sales = slots.get(key, (0, Decimal("0")))
        slots[key] = (count + 1, sales + order_value(order, catalog))

    peaks = [
        PeakHour(
            day=day,
            hour=hour,
            order_count=count,
            total_sales=sales,
            average_order_value=(sales / count).quantize(_CENT, rounding=ROUND_HALF_UP),
        )
        for (day, hour), (count, sales) in slots.items()
    ]
    return sorted(peaks, key=lambda p: p.order_count, reverse=True)


def item_profitability(
    orders: Iterable[Order],
    period: PeriodLike,
    catalog: CatalogSnapshot,
    **range_kwargs,
) -> List[ItemProfitability]:
    """Revenue, cost and margin per catalog item, highest profit first."""
    date_range = _range_for(period, **range_kwargs)
    units: "OrderedDict[int, int]" = OrderedDict()
    for order in realized_orders(orders, date_range):
        for item_id, quantity in order.items.items():
            if item_id in catalog:
                units[item_id] = units.get(item_id, 0) + quantity

    rows = []
    for item_id, sold in units.items():
        revenue = catalog.price_of(item_id) * sold
        cost = catalog.cost_of(item_id) * sold
        profit = revenue - cost
        margin = (profit / revenue * 100).quantize(_TENTH, rounding=ROUND_HALF_UP) if revenue > 0 else Decimal("0")
        rows.append(ItemProfitability(
            item_id=item_id,
            item_name=catalog.name_of(item_id),
            units_sold=sold,
            revenue=revenue,
            cost=cost,
            profit=profit,
            profit_margin=float(margin),
        ))
    return sorted(rows, key=lambda row: row.profit, reverse=True)


def staff_performance(
    orders: Iterable[Order],
    period: PeriodLike,
    catalog: CatalogSnapshot,
    **range_kwargs,
) -> List[StaffPerformance]:
    """Realized orders and sales per cashier, top seller first."""
    date_range = _range_for(period, **range_kwargs)
    per_cashier: "OrderedDict[str, Tuple[int, Decimal]]" = OrderedDict()
    for order in realized_orders(orders, date_range):
        count, sales = per_cashier.get(order.cashier_name, (0, Decimal("0")))
        per_cashier[order.cashier_name] = (count + 1, sales + order_value(order, catalog))

    rows = [
        StaffPerformance(
            cashier_name=name,
            orders_processed=count,
            total_sales=sales,
            average_order_value=(sales / count).quantize(_CENT, rounding=ROUND_HALF_UP),
        )
        for name, (count, sales) in per_cashier.items()
    ]
    return sorted(rows, key=lambda row: row.total_sales, reverse=True)

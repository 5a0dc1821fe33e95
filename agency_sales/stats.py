"""Sales statistics for the dashboard and reports.

This module computes the summary snapshot (count, revenue, average price,
average days on market), the chart series used by report widgets, and
persists the cached SalesStats row for each agency.
"""

import calendar
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable, Optional

from django.conf import settings
from django.core.exceptions import MultipleObjectsReturned
from django.db import DatabaseError
from django.db.models import QuerySet
from django.utils import timezone

from .exceptions import StatsRefreshError
from .listing import DESC, DateRange, SortState, get_field, sort_items
from .models import Agency, SalesStats, Setting, Transaction

logger = logging.getLogger(__name__)

DEFAULT_STATS_PERIOD = "12months"

# Period selector -> (unit, amount). "all" has no lower bound.
PERIOD_WINDOWS: dict[str, Optional[tuple[str, int]]] = {
    "30days": ("days", 30),
    "90days": ("days", 90),
    "6months": ("months", 6),
    "12months": ("months", 12),
    "all": None,
}

CLOSED_STATUSES = frozenset(str(status) for status in Transaction.CLOSED_STATUSES)

_CENTS = Decimal("0.01")

DEFAULT_COMMISSION_RATE = Decimal("0.02")

AUCTION_STATUSES = frozenset(
    {str(Transaction.Status.AUCTIONED), str(Transaction.Status.PASSED_IN)}
)

# (label, lower bound inclusive, upper bound exclusive or None).
PRICE_RANGES: tuple[tuple[str, Decimal, Optional[Decimal]], ...] = (
    ("Under $300k", Decimal("0"), Decimal("300000")),
    ("$300k-$500k", Decimal("300000"), Decimal("500000")),
    ("$500k-$750k", Decimal("500000"), Decimal("750000")),
    ("$750k-$1M", Decimal("750000"), Decimal("1000000")),
    ("$1M-$2M", Decimal("1000000"), Decimal("2000000")),
    ("$2M+", Decimal("2000000"), None),
)


class CountPolicy(str, Enum):
    """Which transactions count toward totalSold."""

    ALL = "all"
    CLOSED_ONLY = "closed_only"


@dataclass(frozen=True)
class Period:
    """A resolved reporting window."""

    start: Optional[datetime]
    end: datetime

    def as_date_range(self) -> DateRange:
        """Return the window as an inclusive date range filter."""
        return DateRange(
            start=self.start.date() if self.start else None,
            end=self.end.date(),
        )


@dataclass(frozen=True)
class StatsSnapshot:
    """Aggregate sales figures for one tenant and period."""

    total_sold: int = 0
    total_revenue: Decimal = Decimal("0")
    avg_price: Decimal = Decimal("0")
    avg_days_on_market: int = 0
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

    def as_dict(self) -> dict[str, Any]:
        """Serialize the snapshot for the JSON API.

        Returns:
            Dictionary with camelCase keys; money values are strings.
        """
        return {
            "totalSold": self.total_sold,
            "totalRevenue": str(self.total_revenue),
            "avgPrice": str(self.avg_price),
            "avgDaysOnMarket": self.avg_days_on_market,
            "periodStart": self.period_start.isoformat() if self.period_start else None,
            "periodEnd": self.period_end.isoformat() if self.period_end else None,
        }


def _months_before(moment: datetime, months: int) -> datetime:
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def resolve_period(period: Optional[str], now: Optional[datetime] = None) -> Period:
    """Turn a period selector into a concrete window ending now.

    Args:
        period: One of "30days", "90days", "6months", "12months" or "all".
            Unknown values fall back to the rolling 12 month window.
        now: End of the window. Defaults to the current time.

    Returns:
        The resolved Period.
    """
    now = now or timezone.now()
    if period not in PERIOD_WINDOWS:
        if period:
            logger.debug(f"Unknown period {period!r}, using {DEFAULT_STATS_PERIOD}")
        period = DEFAULT_STATS_PERIOD
    window = PERIOD_WINDOWS[period]
    if window is None:
        return Period(start=None, end=now)
    unit, amount = window
    if unit == "days":
        return Period(start=now - timedelta(days=amount), end=now)
    return Period(start=_months_before(now, amount), end=now)


def _read(item: Any, *names: str) -> Any:
    for name in names:
        value = get_field(item, name)
        if value is not None:
            return value
    return None


def _to_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except ValueError:
        return None


def parse_price(value: Any) -> Decimal:
    """Parse a stored price.

    Args:
        value: Decimal, number or numeric string.

    Returns:
        The price, or Decimal("0") if it cannot be parsed.
    """
    if value is None or value == "":
        return Decimal("0")
    try:
        price = Decimal(str(value).strip())
    except InvalidOperation:
        logger.debug(f"Unparsable price {value!r}, counting as 0")
        return Decimal("0")
    if not price.is_finite():
        return Decimal("0")
    return price


def days_on_market(transaction: Any) -> Optional[int]:
    """Whole days between listing and sale.

    Args:
        transaction: A record with listed and transaction dates.

    Returns:
        Number of days, or None if either date is missing or invalid.
    """
    listed = _to_date(_read(transaction, "listed_date", "listedDate"))
    sold = _to_date(_read(transaction, "transaction_date", "transactionDate", "soldDate"))
    if listed is None or sold is None:
        return None
    return (sold - listed).days


def in_period(transaction: Any, period: Optional[Period]) -> bool:
    """Check whether a transaction's sale date falls inside the period."""
    if period is None or period.start is None:
        return True
    return period.as_date_range().contains(
        _read(transaction, "transaction_date", "transactionDate", "soldDate")
    )


def is_closed(transaction: Any) -> bool:
    """Check whether a transaction has sold or settled."""
    return str(_read(transaction, "status") or "") in CLOSED_STATUSES


def compute_sales_stats(
    transactions: Iterable[Any],
    period: Optional[Period] = None,
    policy: Optional[CountPolicy] = None,
) -> StatsSnapshot:
    """Compute the summary snapshot from a set of transactions.

    Never raises for empty or malformed input: unparsable prices count as 0
    and transactions without a valid pair of dates are left out of the days
    on market average.

    Args:
        transactions: Records exposing price, status and the two dates.
        period: Window the snapshot covers. Transactions sold outside a
            bounded window are left out.
        policy: Count policy; defaults to the configured policy.

    Returns:
        The computed StatsSnapshot.
    """
    policy = CountPolicy(policy or get_count_policy())
    counted = [
        t
        for t in transactions
        if in_period(t, period) and (policy is CountPolicy.ALL or is_closed(t))
    ]

    total_sold = len(counted)
    total_revenue = sum((parse_price(_read(t, "price")) for t in counted), Decimal("0"))
    avg_price = total_revenue / total_sold if total_sold else Decimal("0")

    durations = [d for d in (days_on_market(t) for t in counted) if d is not None]
    avg_days = 0
    if durations:
        mean = Decimal(sum(durations)) / Decimal(len(durations))
        avg_days = int(mean.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    return StatsSnapshot(
        total_sold=total_sold,
        total_revenue=total_revenue,
        avg_price=avg_price,
        avg_days_on_market=avg_days,
        period_start=period.start if period else None,
        period_end=period.end if period else None,
    )


def get_count_policy() -> CountPolicy:
    """Read the configured count policy, defaulting to counting everything."""
    raw = getattr(settings, "SALES_STATS_COUNT_POLICY", CountPolicy.ALL.value)
    try:
        return CountPolicy(raw)
    except ValueError:
        logger.warning(f"Invalid SALES_STATS_COUNT_POLICY {raw!r}, counting all transactions")
        return CountPolicy.ALL


def get_commission_rate(agency: Optional[Agency] = None) -> Decimal:
    """Read the commission rate for a tenant.

    The tenant's "commissionRate" setting wins over SALES_COMMISSION_RATE.
    Unparsable or negative rates fall back to the default.

    Args:
        agency: Tenant to read the rate for.

    Returns:
        Commission as a fraction of the sale price, e.g. Decimal("0.02").
    """
    raw = Setting.get_value("commissionRate", agency=agency)
    if raw in (None, ""):
        raw = getattr(settings, "SALES_COMMISSION_RATE", DEFAULT_COMMISSION_RATE)
    try:
        rate = Decimal(str(raw).strip())
    except InvalidOperation:
        rate = None
    if rate is None or not rate.is_finite() or rate < 0:
        logger.warning(f"Invalid commission rate {raw!r}, using {DEFAULT_COMMISSION_RATE}")
        return DEFAULT_COMMISSION_RATE
    return rate


def transactions_for(
    agency: Optional[Agency] = None, agent_id: Optional[int] = None
) -> QuerySet[Transaction]:
    """Get the transactions in a tenant's scope.

    Args:
        agency: Tenant to scope to. None means every agency.
        agent_id: Optional agent to narrow to.

    Returns:
        Transaction queryset.
    """
    queryset = Transaction.objects.select_related("agent")
    if agency is not None:
        queryset = queryset.filter(agency=agency)
    if agent_id:
        queryset = queryset.filter(agent_id=agent_id)
    return queryset


def get_sales_stats(agency: Optional[Agency] = None) -> Optional[SalesStats]:
    """Get the cached snapshot for a tenant.

    Args:
        agency: Tenant to read. None reads the all-agencies snapshot.

    Returns:
        The SalesStats row or None if it has never been computed.
    """
    return SalesStats.objects.filter(agency=agency).first()


def snapshot_from_model(stats: SalesStats) -> StatsSnapshot:
    """Convert a cached row back into a snapshot."""
    return StatsSnapshot(
        total_sold=stats.total_sold,
        total_revenue=stats.total_revenue,
        avg_price=stats.avg_price,
        avg_days_on_market=stats.avg_days_on_market,
        period_start=stats.period_start,
        period_end=stats.period_end,
    )


def refresh_sales_stats(
    agency: Optional[Agency] = None,
    period: Optional[str] = None,
    policy: Optional[CountPolicy] = None,
    now: Optional[datetime] = None,
) -> SalesStats:
    """Recompute and store the snapshot for a tenant.

    The whole snapshot is recomputed from the transaction set and written
    over the tenant's single SalesStats row. Concurrent refreshes are not
    serialized; the last writer wins.

    Args:
        agency: Tenant to refresh. None refreshes the all-agencies row.
        period: Optional period selector. When omitted every transaction in
            scope is counted and the row records the rolling 12 month window.
        policy: Count policy override.
        now: End of the period. Defaults to the current time.

    Returns:
        The updated SalesStats row.

    Raises:
        StatsRefreshError: If the transactions could not be read or the
            snapshot could not be saved. The previous row is left in place.
    """
    tenant = agency.name if agency else "all agencies"
    logger.info(f"Refreshing sales stats for {tenant}...")

    try:
        window = resolve_period(period or DEFAULT_STATS_PERIOD, now=now)
        snapshot = compute_sales_stats(
            transactions_for(agency),
            period=window if period else None,
            policy=policy,
        )
    except (ValueError, OverflowError) as e:
        logger.warning(f"Could not compute stats period for {tenant}: {e}")
        end = now or timezone.now()
        window = Period(start=end, end=end)
        snapshot = StatsSnapshot()
    except DatabaseError as e:
        logger.error(f"Failed to load transactions for {tenant}: {e}")
        raise StatsRefreshError("Failed to update sales stats") from e

    try:
        stats, created = SalesStats.objects.update_or_create(
            agency=agency,
            defaults={
                "total_sold": snapshot.total_sold,
                "total_revenue": snapshot.total_revenue.quantize(_CENTS, ROUND_HALF_UP),
                "avg_price": snapshot.avg_price.quantize(_CENTS, ROUND_HALF_UP),
                "avg_days_on_market": snapshot.avg_days_on_market,
                "period_start": window.start or window.end,
                "period_end": window.end,
            },
        )
    except (DatabaseError, MultipleObjectsReturned) as e:
        logger.error(f"Failed to save sales stats for {tenant}: {e}")
        raise StatsRefreshError("Failed to update sales stats") from e

    logger.info(
        f"{'Created' if created else 'Updated'} sales stats for {tenant}: "
        f"{stats.total_sold} sold, ${stats.total_revenue:,.2f} revenue"
    )
    return stats


def _month_starts(start: date, end: date) -> list[date]:
    months = []
    current = start.replace(day=1)
    while current <= end:
        months.append(current)
        if current.month == 12:
            current = current.replace(year=current.year + 1, month=1)
        else:
            current = current.replace(month=current.month + 1)
    return months


def monthly_sales_series(
    transactions: Iterable[Any], period: Optional[str] = None, now: Optional[datetime] = None
) -> dict[str, list]:
    """Build the monthly sales chart series.

    Closed transactions are bucketed by the month of their sale date, one
    bucket per calendar month in the period, oldest first.

    Args:
        transactions: Records to bucket.
        period: Period selector; "all" starts at the earliest sale.
        now: End of the window.

    Returns:
        Dictionary with "months", "salesData" and "revenueData" lists.
    """
    window = resolve_period(period or "6months", now=now)
    closed = [t for t in transactions if is_closed(t) and in_period(t, window)]
    sale_dates = [
        d
        for d in (_to_date(_read(t, "transaction_date", "transactionDate")) for t in closed)
        if d is not None
    ]

    end = window.end.date()
    if window.start is not None:
        start = window.start.date()
    elif sale_dates:
        start = min(sale_dates)
    else:
        start = _months_before(window.end, 11).date()

    buckets = _month_starts(start, end)
    counts: Counter = Counter()
    revenue: dict[date, Decimal] = {}
    for t in closed:
        sold = _to_date(_read(t, "transaction_date", "transactionDate"))
        if sold is None:
            continue
        bucket = sold.replace(day=1)
        counts[bucket] += 1
        revenue[bucket] = revenue.get(bucket, Decimal("0")) + parse_price(_read(t, "price"))

    return {
        "months": [calendar.month_abbr[b.month] for b in buckets],
        "salesData": [counts.get(b, 0) for b in buckets],
        "revenueData": [float(revenue.get(b, Decimal("0"))) for b in buckets],
    }


def _agent_label(transaction: Any) -> str:
    name = _read(transaction, "agent_name", "agentName")
    if name is None:
        agent = get_field(transaction, "agent")
        name = getattr(agent, "name", None) or "Unknown"
    return name


def agent_performance_series(
    transactions: Iterable[Any], limit: Optional[int] = None
) -> dict[str, list]:
    """Count closed sales per agent.

    Args:
        transactions: Records with agent_name and status.
        limit: Keep only the top agents.

    Returns:
        Dictionary with "labels" (agent names) and "data" (sale counts),
        ordered by count descending then name.
    """
    counts: Counter = Counter()
    for t in transactions:
        if is_closed(t):
            counts[_agent_label(t)] += 1

    ranked = sorted(counts.items(), key=lambda pair: (-pair[1], pair[0]))
    if limit is not None:
        ranked = ranked[:limit]
    return {
        "labels": [name for name, _ in ranked],
        "data": [count for _, count in ranked],
    }


def property_type_breakdown(transactions: Iterable[Any]) -> dict[str, list]:
    """Count transactions per property type in enum order."""
    counts = Counter(_read(t, "property_type", "propertyType") for t in transactions)
    labels = [choice.value for choice in Transaction.PropertyType]
    return {"labels": labels, "data": [counts.get(label, 0) for label in labels]}


def top_sales(transactions: Iterable[Any], limit: int = 5) -> list:
    """Get the highest priced closed transactions.

    Args:
        transactions: Records to rank.
        limit: Number of transactions to return.

    Returns:
        Up to ``limit`` closed transactions, most expensive first.
    """
    closed = [t for t in transactions if is_closed(t)]
    return sort_items(closed, SortState(key="price", direction=DESC))[:limit]


def location_series(transactions: Iterable[Any], limit: Optional[int] = None) -> dict[str, list]:
    """Count closed sales per suburb.

    Args:
        transactions: Records with property_suburb and status.
        limit: Keep only the busiest suburbs.

    Returns:
        Dictionary with "labels" (suburbs) and "data" (sale counts),
        ordered by count descending then suburb.
    """
    counts: Counter = Counter()
    for t in transactions:
        if is_closed(t):
            suburb = (_read(t, "property_suburb", "propertySuburb") or "").strip()
            counts[suburb or "Unknown"] += 1

    ranked = sorted(counts.items(), key=lambda pair: (-pair[1], pair[0]))
    if limit is not None:
        ranked = ranked[:limit]
    return {
        "labels": [suburb for suburb, _ in ranked],
        "data": [count for _, count in ranked],
    }


def price_range_series(transactions: Iterable[Any]) -> dict[str, list]:
    """Count transactions per price band.

    Every band in PRICE_RANGES is present, empty ones with a zero count.
    Transactions without a positive price are left out.
    """
    counts = [0] * len(PRICE_RANGES)
    for t in transactions:
        price = parse_price(_read(t, "price"))
        if price <= 0:
            continue
        for index, (_, low, high) in enumerate(PRICE_RANGES):
            if price >= low and (high is None or price < high):
                counts[index] += 1
                break
    return {"labels": [label for label, _, _ in PRICE_RANGES], "data": counts}


def agent_commission_rows(
    transactions: Iterable[Any], rate: Decimal = DEFAULT_COMMISSION_RATE
) -> list[dict[str, Any]]:
    """Summarise commission earned per agent.

    Commission is the rate applied to the price of each closed sale.

    Args:
        transactions: Records with agent, price and status.
        rate: Commission as a fraction of the sale price.

    Returns:
        One row per agent with name, listings (all transactions),
        totalCommission, averageCommission (None without closed sales),
        commissionPercent (share of all agents' commission) and
        auctionPercent (share of the agent's listings that went to
        auction). Rows are ordered by totalCommission descending, then name.
    """
    listings: Counter = Counter()
    closed: Counter = Counter()
    auctions: Counter = Counter()
    commission: dict[str, Decimal] = {}
    for t in transactions:
        name = _agent_label(t)
        listings[name] += 1
        commission.setdefault(name, Decimal("0"))
        if str(_read(t, "status") or "") in AUCTION_STATUSES:
            auctions[name] += 1
        if is_closed(t):
            closed[name] += 1
            commission[name] += parse_price(_read(t, "price")) * rate

    grand_total = sum(commission.values(), Decimal("0"))
    rows = []
    for name, total in commission.items():
        total = total.quantize(_CENTS, rounding=ROUND_HALF_UP)
        rows.append(
            {
                "name": name,
                "listings": listings[name],
                "totalCommission": float(total),
                "averageCommission": (
                    float((total / closed[name]).quantize(_CENTS, rounding=ROUND_HALF_UP))
                    if closed[name]
                    else None
                ),
                "commissionPercent": (
                    float((total / grand_total * 100).quantize(_CENTS, rounding=ROUND_HALF_UP))
                    if grand_total
                    else 0.0
                ),
                "auctionPercent": float(
                    (Decimal(auctions[name]) / listings[name] * 100).quantize(
                        _CENTS, rounding=ROUND_HALF_UP
                    )
                ),
            }
        )
    rows.sort(key=lambda row: (-row["totalCommission"], row["name"]))
    return rows

"""Report widget registry.

Every widget type a report can contain is a member of WidgetType. Each
member maps to a WidgetSpec describing its title, the data it needs and how
it is laid out; the mapping is checked for completeness at import time so a
new type cannot be added without a spec.
"""

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from django.core.exceptions import ImproperlyConfigured

from . import stats
from .listing import get_field

logger = logging.getLogger(__name__)


class WidgetType(str, Enum):
    """Closed set of report widget types."""

    TOTAL_PROPERTIES_SOLD = "total-properties-sold"
    TOTAL_REVENUE = "total-revenue"
    AVERAGE_SELLING_PRICE = "average-selling-price"
    AVERAGE_DAYS_ON_MARKET = "average-days-on-market"
    SALES_BY_PROPERTY_TYPE = "sales-by-property-type"
    MONTHLY_SALES = "monthly-sales"
    TOP_SALES = "top-sales"
    AGENT_LEADERBOARD = "agent-leaderboard"
    SALES_BY_SUBURB = "sales-by-suburb"
    AGENT_COMMISSION = "agent-commission"
    TEXT_SECTION = "text-section"
    SECTION_TITLE = "section-title"
    COLOR_SETTINGS = "color-settings"
    PAGE_BREAK = "page-break"


class WidgetCategory(str, Enum):
    """Tabs of the widget picker."""

    STATISTICS = "stats"
    CHARTS = "charts"
    TABLES = "tables"
    CONTENT = "content"


class Layout(str, Enum):
    """How much of the two-column grid a widget occupies."""

    STANDARD = "standard"
    FULL_WIDTH = "full-width"


class DataRequirement(str, Enum):
    """Data a widget needs before it can be rendered."""

    STATS_SNAPSHOT = "stats-snapshot"
    TOP_TRANSACTIONS = "top-transactions"
    MONTHLY_SERIES = "monthly-series"
    AGENT_SERIES = "agent-series"
    PROPERTY_TYPE_SERIES = "property-type-series"
    LOCATION_SERIES = "location-series"
    COMMISSION_ROWS = "commission-rows"
    NONE = "none"


class ContentState(str, Enum):
    """Render state of a widget's content."""

    READY = "ready"
    LOADING = "loading"
    EMPTY = "empty"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class WidgetSpec:
    """Registry entry for a widget type.

    Attributes:
        title: Heading shown in the editor and the exported PDF.
        category: Picker tab the widget is listed under.
        requirement: Data the widget is bound to.
        layout: Standard (one column) or full width (both columns).
        description: Short help text for the picker.
        stat_field: Snapshot field shown by statistic cards.
    """

    title: str
    category: WidgetCategory
    requirement: DataRequirement
    layout: Layout = Layout.STANDARD
    description: str = ""
    stat_field: Optional[str] = None


WIDGET_SPECS: dict[WidgetType, WidgetSpec] = {
    WidgetType.TOTAL_PROPERTIES_SOLD: WidgetSpec(
        title="Properties Sold",
        category=WidgetCategory.STATISTICS,
        requirement=DataRequirement.STATS_SNAPSHOT,
        description="Total number of properties sold in the period",
        stat_field="total_sold",
    ),
    WidgetType.TOTAL_REVENUE: WidgetSpec(
        title="Total Revenue",
        category=WidgetCategory.STATISTICS,
        requirement=DataRequirement.STATS_SNAPSHOT,
        description="Sum of all sale prices in the period",
        stat_field="total_revenue",
    ),
    WidgetType.AVERAGE_SELLING_PRICE: WidgetSpec(
        title="Average Selling Price",
        category=WidgetCategory.STATISTICS,
        requirement=DataRequirement.STATS_SNAPSHOT,
        description="Mean sale price in the period",
        stat_field="avg_price",
    ),
    WidgetType.AVERAGE_DAYS_ON_MARKET: WidgetSpec(
        title="Average Days on Market",
        category=WidgetCategory.STATISTICS,
        requirement=DataRequirement.STATS_SNAPSHOT,
        description="Mean days between listing and sale",
        stat_field="avg_days_on_market",
    ),
    WidgetType.SALES_BY_PROPERTY_TYPE: WidgetSpec(
        title="Sales by Property Type",
        category=WidgetCategory.CHARTS,
        requirement=DataRequirement.PROPERTY_TYPE_SERIES,
        description="Share of transactions per property type",
    ),
    WidgetType.MONTHLY_SALES: WidgetSpec(
        title="Monthly Sales Performance",
        category=WidgetCategory.CHARTS,
        requirement=DataRequirement.MONTHLY_SERIES,
        description="Sales count and revenue per month",
    ),
    WidgetType.TOP_SALES: WidgetSpec(
        title="Top 5 Sales",
        category=WidgetCategory.TABLES,
        requirement=DataRequirement.TOP_TRANSACTIONS,
        description="Highest priced sales in the period",
    ),
    WidgetType.AGENT_LEADERBOARD: WidgetSpec(
        title="Agent Performance",
        category=WidgetCategory.CHARTS,
        requirement=DataRequirement.AGENT_SERIES,
        description="Properties sold per agent",
    ),
    WidgetType.SALES_BY_SUBURB: WidgetSpec(
        title="Sales by Location",
        category=WidgetCategory.CHARTS,
        requirement=DataRequirement.LOCATION_SERIES,
        description="Sales distribution across suburbs",
    ),
    WidgetType.AGENT_COMMISSION: WidgetSpec(
        title="Agent Commission",
        category=WidgetCategory.TABLES,
        requirement=DataRequirement.COMMISSION_ROWS,
        description="Commission earned by each agent in the period",
    ),
    WidgetType.TEXT_SECTION: WidgetSpec(
        title="Text Section",
        category=WidgetCategory.CONTENT,
        requirement=DataRequirement.NONE,
        layout=Layout.FULL_WIDTH,
        description="Free text paragraph",
    ),
    WidgetType.SECTION_TITLE: WidgetSpec(
        title="Section Title",
        category=WidgetCategory.CONTENT,
        requirement=DataRequirement.NONE,
        layout=Layout.FULL_WIDTH,
        description="Heading that starts a new section",
    ),
    WidgetType.COLOR_SETTINGS: WidgetSpec(
        title="Chart Colors",
        category=WidgetCategory.CONTENT,
        requirement=DataRequirement.NONE,
        layout=Layout.FULL_WIDTH,
        description="Palette used by the report's charts",
    ),
    WidgetType.PAGE_BREAK: WidgetSpec(
        title="Page Break",
        category=WidgetCategory.CONTENT,
        requirement=DataRequirement.NONE,
        layout=Layout.FULL_WIDTH,
        description="Start the next row on a new page",
    ),
}

_unregistered = set(WidgetType) - set(WIDGET_SPECS)
if _unregistered:
    raise ImproperlyConfigured(
        f"Widget types without a spec: {sorted(t.value for t in _unregistered)}"
    )


def parse_widget_type(raw: Any) -> Optional[WidgetType]:
    """Look up a widget type by its identifier.

    Args:
        raw: A WidgetType or its string identifier.

    Returns:
        The WidgetType, or None if the identifier is not registered.
    """
    if isinstance(raw, WidgetType):
        return raw
    try:
        return WidgetType(str(raw))
    except ValueError:
        return None


@dataclass(frozen=True)
class Widget:
    """A widget instance placed in a report.

    Attributes:
        id: Opaque identifier, unique within a report.
        type: The widget type, or the raw identifier if it is not registered.
        options: Per-instance settings such as the text of a text section.
    """

    id: str
    type: Union[WidgetType, str]
    options: Mapping[str, Any] = field(default_factory=dict)

    @property
    def spec(self) -> Optional[WidgetSpec]:
        """Registry entry, or None for unknown types."""
        widget_type = parse_widget_type(self.type)
        return WIDGET_SPECS[widget_type] if widget_type else None

    @property
    def type_id(self) -> str:
        """The type identifier as a string."""
        return self.type.value if isinstance(self.type, WidgetType) else str(self.type)

    @property
    def title(self) -> str:
        """Heading for the widget."""
        spec = self.spec
        return spec.title if spec else "Unknown Widget"

    @property
    def is_full_width(self) -> bool:
        """Whether the widget spans both columns."""
        spec = self.spec
        return spec is not None and spec.layout is Layout.FULL_WIDTH

    @property
    def is_page_break(self) -> bool:
        """Whether the widget is a page break marker."""
        return parse_widget_type(self.type) is WidgetType.PAGE_BREAK


def new_widget(widget_type: Union[WidgetType, str], **options: Any) -> Widget:
    """Create a widget with a fresh unique id."""
    parsed = parse_widget_type(widget_type)
    return Widget(id=uuid.uuid4().hex, type=parsed or str(widget_type), options=options)


@dataclass(frozen=True)
class WidgetContent:
    """Resolved content of one widget.

    Attributes:
        state: Whether the content is ready, pending, empty or unknown.
        data: Data bound to the widget when ready.
        text: Message shown instead of data for the other states.
    """

    state: ContentState
    data: Any = None
    text: str = ""

    @property
    def is_ready(self) -> bool:
        """Whether the content can be rendered."""
        return self.state is ContentState.READY


LOADING_CONTENT = WidgetContent(state=ContentState.LOADING, text="Loading...")

# Returned by a data source for data that has not arrived yet.
PENDING = object()


def format_currency(value: Any) -> str:
    """Format a money amount for display.

    Amounts of a million or more are shortened ("$1.2M"); smaller amounts
    are shown in whole dollars with thousands separators.
    """
    amount = stats.parse_price(value)
    if amount >= 1_000_000:
        return f"${amount / 1_000_000:.1f}M"
    return f"${amount:,.0f}"


def _format_stat(stat_field: str, snapshot: stats.StatsSnapshot) -> str:
    value = getattr(snapshot, stat_field)
    if stat_field in ("total_revenue", "avg_price"):
        return format_currency(value)
    if stat_field == "avg_days_on_market":
        return f"{value} days"
    return f"{value:,}"


class WidgetDataSource:
    """Binds widget data requirements to transaction data.

    Transactions are loaded once, on first use, and every requirement is
    computed at most once, so widgets that need the same data share it.

    Args:
        loader: Callable returning the tenant's transactions.
        period: Period selector the report covers.
        agent_id: Optional agent the report is scoped to.
        top_sales_limit: Rows shown by the top sales table.
        commission_rate: Commission as a fraction of the sale price.
        now: End of the period.
    """

    def __init__(
        self,
        loader: Callable[[], Iterable[Any]],
        period: Optional[str] = None,
        agent_id: Optional[int] = None,
        top_sales_limit: int = 5,
        commission_rate: Optional[Decimal] = None,
        now=None,
    ) -> None:
        self._loader = loader
        self.period = period
        self.agent_id = agent_id
        self.top_sales_limit = top_sales_limit
        self.commission_rate = (
            stats.DEFAULT_COMMISSION_RATE if commission_rate is None else commission_rate
        )
        self.now = now
        self._transactions: Optional[list] = None
        self._cache: dict[DataRequirement, Any] = {}
        self._resolvers: dict[DataRequirement, Callable[[], Any]] = {
            DataRequirement.STATS_SNAPSHOT: self._stats_snapshot,
            DataRequirement.TOP_TRANSACTIONS: self._top_transactions,
            DataRequirement.MONTHLY_SERIES: self._monthly_series,
            DataRequirement.AGENT_SERIES: self._agent_series,
            DataRequirement.PROPERTY_TYPE_SERIES: self._property_type_series,
            DataRequirement.LOCATION_SERIES: self._location_series,
            DataRequirement.COMMISSION_ROWS: self._commission_rows,
            DataRequirement.NONE: lambda: None,
        }
        missing = set(DataRequirement) - set(self._resolvers)
        if missing:
            raise ImproperlyConfigured(f"Data requirements without a resolver: {missing}")

    @classmethod
    def for_tenant(
        cls,
        agency=None,
        agent_id: Optional[int] = None,
        period: Optional[str] = None,
        **kwargs: Any,
    ) -> "WidgetDataSource":
        """Create a source reading the tenant's transactions from the database."""
        return cls(
            loader=lambda: list(stats.transactions_for(agency, agent_id=agent_id)),
            period=period,
            agent_id=agent_id,
            **kwargs,
        )

    def transactions(self) -> list:
        """Transactions in scope, loaded on first call."""
        if self._transactions is None:
            loaded = list(self._loader())
            if self.agent_id:
                loaded = [
                    t for t in loaded if str(get_field(t, "agent_id")) == str(self.agent_id)
                ]
            self._transactions = loaded
        return self._transactions

    def _in_period(self) -> list:
        window = stats.resolve_period(self.period, now=self.now)
        return [t for t in self.transactions() if stats.in_period(t, window)]

    def _stats_snapshot(self) -> stats.StatsSnapshot:
        window = stats.resolve_period(self.period, now=self.now)
        return stats.compute_sales_stats(self.transactions(), period=window)

    def _top_transactions(self) -> list:
        return stats.top_sales(self._in_period(), limit=self.top_sales_limit)

    def _monthly_series(self) -> dict[str, list]:
        return stats.monthly_sales_series(self.transactions(), self.period, now=self.now)

    def _agent_series(self) -> dict[str, list]:
        return stats.agent_performance_series(self._in_period())

    def _property_type_series(self) -> dict[str, list]:
        return stats.property_type_breakdown(self._in_period())

    def _location_series(self) -> dict[str, list]:
        return stats.location_series(self._in_period())

    def _commission_rows(self) -> list[dict[str, Any]]:
        return stats.agent_commission_rows(self._in_period(), self.commission_rate)

    def fetch(self, requirement: DataRequirement) -> Any:
        """Get the data for a requirement, computing it on first request."""
        if requirement not in self._cache:
            self._cache[requirement] = self._resolvers[requirement]()
        return self._cache[requirement]


def _serialize_sale(transaction: Any) -> dict[str, Any]:
    return {
        "id": get_field(transaction, "id"),
        "propertyAddress": get_field(transaction, "property_address"),
        "propertySuburb": get_field(transaction, "property_suburb"),
        "propertyType": get_field(transaction, "property_type"),
        "agentName": get_field(transaction, "agent_name"),
        "price": format_currency(get_field(transaction, "price")),
    }


def _serialize_commission(row: Mapping[str, Any]) -> dict[str, Any]:
    average = row["averageCommission"]
    return {
        "name": row["name"],
        "listings": row["listings"],
        "totalCommission": format_currency(row["totalCommission"]),
        "averageCommission": format_currency(average) if average is not None else "N/A",
        "commissionPercent": f"{row['commissionPercent']:.2f}%",
    }


def _series_is_empty(series: Mapping[str, list]) -> bool:
    values = series.get("data") or series.get("salesData") or []
    return not any(values)


def resolve_widget_content(widget: Widget, source: WidgetDataSource) -> WidgetContent:
    """Resolve a widget's content from a data source.

    Unknown widget types become a visible placeholder and failed fetches an
    empty state, so one bad widget never stops the rest of a report.

    Args:
        widget: The widget to resolve.
        source: Data source for the report.

    Returns:
        The widget's content.
    """
    spec = widget.spec
    if spec is None:
        return WidgetContent(
            state=ContentState.UNKNOWN, text=f"Unknown widget type: {widget.type_id}"
        )
    if spec.requirement is DataRequirement.NONE:
        return WidgetContent(state=ContentState.READY, data=dict(widget.options))

    try:
        data = source.fetch(spec.requirement)
    except Exception as e:
        logger.error(f"Failed to load data for widget {widget.id} ({widget.type_id}): {e}")
        return WidgetContent(state=ContentState.EMPTY, text="Data unavailable")

    if data is PENDING:
        return LOADING_CONTENT

    if spec.requirement is DataRequirement.STATS_SNAPSHOT:
        return WidgetContent(
            state=ContentState.READY,
            data={
                "label": spec.title,
                "value": _format_stat(spec.stat_field, data),
                "raw": str(getattr(data, spec.stat_field)),
            },
        )
    if spec.requirement is DataRequirement.TOP_TRANSACTIONS:
        if not data:
            return WidgetContent(
                state=ContentState.EMPTY,
                text="No sales data available for the selected criteria",
            )
        return WidgetContent(
            state=ContentState.READY, data=[_serialize_sale(t) for t in data]
        )
    if spec.requirement is DataRequirement.COMMISSION_ROWS:
        if not any(row["totalCommission"] for row in data):
            return WidgetContent(
                state=ContentState.EMPTY, text="No commission earned in this period"
            )
        return WidgetContent(
            state=ContentState.READY, data=[_serialize_commission(row) for row in data]
        )
    if _series_is_empty(data):
        return WidgetContent(state=ContentState.EMPTY, text="No data for this period")
    return WidgetContent(state=ContentState.READY, data=data)


def registry_listing() -> list[dict[str, str]]:
    """Describe every widget type for the widget picker."""
    return [
        {
            "type": widget_type.value,
            "title": spec.title,
            "category": spec.category.value,
            "layout": spec.layout.value,
            "description": spec.description,
        }
        for widget_type, spec in WIDGET_SPECS.items()
    ]

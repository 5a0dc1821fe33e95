"""Report configuration and page layout.

A report is an ordered list of widgets. Composition resolves every widget's
content and packs the widgets into rows of a two-column grid: standard
widgets two per row in list order, full-width widgets alone on their own
row, and page breaks forcing the next row onto a new page.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

from django.utils import timezone

from .exceptions import InvalidReportConfig
from .widgets import (
    LOADING_CONTENT,
    ContentState,
    Widget,
    WidgetContent,
    WidgetDataSource,
    WidgetType,
    new_widget,
    parse_widget_type,
    resolve_widget_content,
)

logger = logging.getLogger(__name__)

_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")

PERIOD_LABELS = {
    "30days": "Last 30 days",
    "90days": "Last quarter",
    "6months": "Last 6 months",
    "12months": "This year",
    "all": "All time",
}


@dataclass(frozen=True)
class ChartPalette:
    """The four chart colors of a report."""

    primary: str = "#2563eb"
    secondary: str = "#16a34a"
    tertiary: str = "#d97706"
    quaternary: str = "#db2777"

    def __post_init__(self) -> None:
        for name in ("primary", "secondary", "tertiary", "quaternary"):
            value = getattr(self, name)
            if not isinstance(value, str) or not _HEX_COLOR.match(value):
                raise InvalidReportConfig(f"Chart color {name} must be #rrggbb, got {value!r}")

    def as_list(self) -> list[str]:
        """Colors in slot order."""
        return [self.primary, self.secondary, self.tertiary, self.quaternary]

    def as_dict(self) -> dict[str, str]:
        """Colors keyed by slot name."""
        return {
            "primary": self.primary,
            "secondary": self.secondary,
            "tertiary": self.tertiary,
            "quaternary": self.quaternary,
        }


@dataclass
class ReportConfiguration:
    """Everything needed to build one report.

    Attributes:
        title: Report title shown on the cover page.
        notes: Optional notes shown on the cover page.
        period: Period selector the report covers.
        agent_id: Agent the report is scoped to, or None for the agency.
        widgets: Ordered widgets making up the report body.
        palette: Chart colors.
        cover_image: URL of the cover image.
        closing_title: Heading of the closing page.
        closing_text: Body of the closing page.
        company_name: Name shown on the cover and in the footer.
        logo_url: Agency logo shown on the cover.
        agent_name: Name of the scoped agent, shown on the cover.
    """

    title: str = "Sales Performance Report"
    notes: str = ""
    period: str = "6months"
    agent_id: Optional[int] = None
    widgets: list[Widget] = field(default_factory=list)
    palette: ChartPalette = field(default_factory=ChartPalette)
    cover_image: str = ""
    closing_title: str = "Thank You"
    closing_text: str = ""
    company_name: str = ""
    logo_url: str = ""
    agent_name: str = ""

    @property
    def period_label(self) -> str:
        """Human readable period name."""
        return PERIOD_LABELS.get(self.period, self.period)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ReportConfiguration":
        """Build a configuration from a JSON payload.

        Unknown widget type identifiers are kept so that they render as
        placeholders. Widgets without an id get a fresh one.

        Args:
            payload: Decoded JSON object.

        Returns:
            The ReportConfiguration.

        Raises:
            InvalidReportConfig: If the payload is malformed.
        """
        if not isinstance(payload, Mapping):
            raise InvalidReportConfig("Report configuration must be an object")

        raw_widgets = payload.get("widgets", [])
        if not isinstance(raw_widgets, list):
            raise InvalidReportConfig("widgets must be a list")

        widgets: list[Widget] = []
        seen_ids: set[str] = set()
        for raw in raw_widgets:
            if isinstance(raw, str):
                raw = {"type": raw}
            if not isinstance(raw, Mapping) or "type" not in raw:
                raise InvalidReportConfig(f"Invalid widget entry: {raw!r}")
            options = raw.get("options") or {}
            if not isinstance(options, Mapping):
                raise InvalidReportConfig(f"Widget options must be an object: {raw!r}")
            widget_id = raw.get("id")
            if widget_id:
                widget_type = parse_widget_type(raw["type"]) or str(raw["type"])
                widget = Widget(id=str(widget_id), type=widget_type, options=dict(options))
            else:
                widget = new_widget(raw["type"], **options)
            if widget.id in seen_ids:
                raise InvalidReportConfig(f"Duplicate widget id: {widget.id}")
            seen_ids.add(widget.id)
            widgets.append(widget)

        colors = payload.get("chartColors") or {}
        if not isinstance(colors, Mapping):
            raise InvalidReportConfig("chartColors must be an object")
        slots = ChartPalette().as_dict()
        slots.update({name: value for name, value in colors.items() if name in slots})
        palette = ChartPalette(**slots)

        agent_id = payload.get("agentId")
        if agent_id in ("", "all"):
            agent_id = None
        if agent_id is not None:
            try:
                agent_id = int(agent_id)
            except (TypeError, ValueError) as e:
                raise InvalidReportConfig(f"Invalid agentId: {agent_id!r}") from e

        defaults = cls()
        return cls(
            title=payload.get("title") or defaults.title,
            notes=payload.get("notes") or "",
            period=payload.get("period") or defaults.period,
            agent_id=agent_id,
            widgets=widgets,
            palette=palette,
            cover_image=payload.get("coverImage") or "",
            closing_title=payload.get("lastPageTitle") or defaults.closing_title,
            closing_text=payload.get("lastPageDescription") or "",
            company_name=payload.get("companyName") or "",
            logo_url=payload.get("logoUrl") or "",
        )


@dataclass(frozen=True)
class Cell:
    """One grid cell: a widget with its content, or an empty filler."""

    widget: Optional[Widget] = None
    content: Optional[WidgetContent] = None

    @property
    def is_filler(self) -> bool:
        """Whether this cell only pads a row."""
        return self.widget is None


FILLER = Cell()


@dataclass(frozen=True)
class Row:
    """A row of the report grid.

    Attributes:
        cells: One cell for full-width rows, two for standard rows.
        full_width: Whether the single cell spans both columns.
        page_break_before: Whether the row must start a new page.
        avoid_split: Hint that the row should not be split across pages.
    """

    cells: tuple[Cell, ...]
    full_width: bool = False
    page_break_before: bool = False
    avoid_split: bool = False


@dataclass(frozen=True)
class ReportLayout:
    """Rows of a composed report, top to bottom."""

    rows: tuple[Row, ...] = ()

    @property
    def page_break_count(self) -> int:
        """Number of forced page boundaries in the body."""
        return sum(1 for row in self.rows if row.page_break_before)


def compose_layout(
    widgets: Sequence[Widget], contents: Optional[Mapping[str, WidgetContent]] = None
) -> ReportLayout:
    """Pack widgets into rows of the two-column grid.

    Standard widgets fill rows two at a time in list order. A full-width
    widget closes the current row and takes a row of its own. A row left
    with a single standard widget is padded with a filler cell. Page breaks
    add no row; they mark the next row as starting a new page. Consecutive
    breaks act as one and a break with no row after it is dropped.

    Args:
        widgets: Widgets in report order.
        contents: Resolved content by widget id. Widgets without an entry
            render as loading.

    Returns:
        The ReportLayout.
    """
    contents = contents or {}
    rows: list[Row] = []
    open_cells: list[Cell] = []
    open_row_breaks = False
    pending_break = False

    def close_open_row() -> None:
        nonlocal open_cells, open_row_breaks
        if open_cells:
            cells = tuple(open_cells) + (FILLER,) * (2 - len(open_cells))
            rows.append(Row(cells=cells, page_break_before=open_row_breaks))
        open_cells = []
        open_row_breaks = False

    for widget in widgets:
        if widget.is_page_break:
            close_open_row()
            pending_break = True
            continue

        cell = Cell(widget=widget, content=contents.get(widget.id, LOADING_CONTENT))
        if widget.is_full_width:
            close_open_row()
            rows.append(
                Row(
                    cells=(cell,),
                    full_width=True,
                    page_break_before=pending_break,
                    avoid_split=True,
                )
            )
            pending_break = False
            continue

        if not open_cells:
            open_row_breaks = pending_break
            pending_break = False
        open_cells.append(cell)
        if len(open_cells) == 2:
            close_open_row()

    close_open_row()
    return ReportLayout(rows=tuple(rows))


@dataclass(frozen=True)
class ComposedReport:
    """A report ready to hand to the PDF renderer."""

    config: ReportConfiguration
    layout: ReportLayout
    generated_at: datetime


def resolve_contents(
    config: ReportConfiguration, source: WidgetDataSource
) -> dict[str, WidgetContent]:
    """Resolve the content of every widget in a report.

    Args:
        config: The report configuration.
        source: Data source bound to the report's tenant, agent and period.

    Returns:
        Content by widget id.
    """
    contents: dict[str, WidgetContent] = {}
    for widget in config.widgets:
        if parse_widget_type(widget.type) is WidgetType.COLOR_SETTINGS:
            contents[widget.id] = WidgetContent(
                state=ContentState.READY, data={"colors": config.palette.as_dict()}
            )
            continue
        contents[widget.id] = resolve_widget_content(widget, source)
    return contents


def compose_report(
    config: ReportConfiguration,
    source: WidgetDataSource,
    now: Optional[datetime] = None,
) -> ComposedReport:
    """Resolve widget content and lay out a report.

    Args:
        config: The report configuration.
        source: Data source bound to the report's tenant, agent and period.
        now: Generation time printed on the cover page.

    Returns:
        The ComposedReport.
    """
    contents = resolve_contents(config, source)
    layout = compose_layout(config.widgets, contents)
    logger.info(
        f"Composed report {config.title!r}: {len(config.widgets)} widgets, "
        f"{len(layout.rows)} rows, {layout.page_break_count} page breaks"
    )
    return ComposedReport(config=config, layout=layout, generated_at=now or timezone.now())

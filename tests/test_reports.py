"""Tests for report configuration and layout composition."""

import math
from datetime import datetime, timezone as dt_timezone

import pytest

from agency_sales.exceptions import InvalidReportConfig
from agency_sales.reports import (
    FILLER,
    ChartPalette,
    ReportConfiguration,
    compose_layout,
    compose_report,
)
from agency_sales.widgets import (
    LOADING_CONTENT,
    ContentState,
    Widget,
    WidgetDataSource,
    WidgetType,
    new_widget,
)

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=dt_timezone.utc)


def stat():
    return new_widget(WidgetType.TOTAL_PROPERTIES_SOLD)


def chart():
    return new_widget(WidgetType.MONTHLY_SALES)


def page_break():
    return new_widget(WidgetType.PAGE_BREAK)


def row_ids(layout):
    return [[cell.widget.id if cell.widget else None for cell in row.cells] for row in layout.rows]


def test_stats_title_chart_layout():
    a, b, title, c = stat(), stat(), new_widget(WidgetType.SECTION_TITLE), chart()
    layout = compose_layout([a, b, title, c])

    assert row_ids(layout) == [[a.id, b.id], [title.id], [c.id, None]]
    assert [row.full_width for row in layout.rows] == [False, True, False]
    assert layout.rows[2].cells[1] is FILLER


def test_full_width_closes_open_row():
    a, text, b = stat(), new_widget(WidgetType.TEXT_SECTION), stat()
    layout = compose_layout([a, text, b])
    assert row_ids(layout) == [[a.id, None], [text.id], [b.id, None]]
    assert layout.rows[1].avoid_split


def test_page_break_marks_next_row():
    a, b, c = stat(), stat(), stat()
    layout = compose_layout([a, page_break(), b, c])

    assert row_ids(layout) == [[a.id, None], [b.id, c.id]]
    assert [row.page_break_before for row in layout.rows] == [False, True]
    assert layout.page_break_count == 1


def test_trailing_and_leading_breaks():
    a = stat()
    layout = compose_layout([page_break(), a, page_break()])
    assert row_ids(layout) == [[a.id, None]]
    assert layout.rows[0].page_break_before


def test_empty_report_has_no_rows():
    assert compose_layout([]).rows == ()


def test_missing_content_renders_loading():
    a = stat()
    layout = compose_layout([a], contents={})
    assert layout.rows[0].cells[0].content is LOADING_CONTENT


def test_layout_is_recomputed_from_order():
    a, b, c = stat(), stat(), stat()
    assert row_ids(compose_layout([c, a, b])) == [[c.id, a.id], [b.id, None]]


def test_palette_defaults_and_validation():
    assert ChartPalette().as_list() == ["#2563eb", "#16a34a", "#d97706", "#db2777"]
    with pytest.raises(InvalidReportConfig):
        ChartPalette(primary="blue")


def test_configuration_from_payload():
    config = ReportConfiguration.from_dict(
        {
            "title": "Q2 Review",
            "period": "90days",
            "agentId": "4",
            "widgets": [{"id": "a", "type": "total-revenue"}, "sparkline"],
            "chartColors": {"primary": "#000000", "unused": "#ffffff"},
            "lastPageTitle": "Contact us",
        }
    )

    assert config.title == "Q2 Review"
    assert config.agent_id == 4
    assert config.period_label == "Last quarter"
    assert config.widgets[0] == Widget(id="a", type=WidgetType.TOTAL_REVENUE)
    assert config.widgets[1].type == "sparkline"
    assert config.palette.primary == "#000000"
    assert config.palette.secondary == "#16a34a"
    assert config.closing_title == "Contact us"


@pytest.mark.parametrize(
    "payload",
    [
        {"widgets": "total-revenue"},
        {"widgets": [{"id": "x", "type": "total-revenue"}, {"id": "x", "type": "top-sales"}]},
        {"widgets": [{"options": {}}]},
        {"chartColors": ["#000000"]},
        {"agentId": "alice"},
    ],
)
def test_invalid_configuration(payload):
    with pytest.raises(InvalidReportConfig):
        ReportConfiguration.from_dict(payload)


def test_compose_report_resolves_every_widget():
    config = ReportConfiguration(
        title="Report",
        period="all",
        widgets=[stat(), new_widget(WidgetType.COLOR_SETTINGS), Widget(id="u", type="bogus")],
    )
    source = WidgetDataSource(loader=lambda: [], period="all", now=NOW)
    report = compose_report(config, source, now=NOW)

    cells = [row.cells[0] for row in report.layout.rows]
    assert cells[0].content.state is ContentState.READY
    assert cells[1].content.data == {"colors": ChartPalette().as_dict()}
    assert cells[2].content.state is ContentState.UNKNOWN
    assert report.generated_at == NOW


def test_consecutive_breaks_act_as_one():
    a, b = stat(), stat()
    layout = compose_layout([a, page_break(), page_break(), page_break(), b])
    assert row_ids(layout) == [[a.id, None], [b.id, None]]
    assert layout.page_break_count == 1


@pytest.mark.parametrize(
    "pattern",
    ["", "s", "ss", "sss", "f", "sfs", "ssfss", "sffs", "sssfssss", "fsssf", "sbsbs", "ssbfsbsss"],
)
def test_row_count_matches_packing(pattern):
    # s: standard, f: full width, b: page break.
    makers = {"s": stat, "f": lambda: new_widget(WidgetType.TEXT_SECTION), "b": page_break}
    widgets = [makers[code]() for code in pattern]

    expected = 0
    for run in pattern.replace("b", "|").replace("f", "|F|").split("|"):
        expected += 1 if run == "F" else math.ceil(len(run) / 2)

    layout = compose_layout(widgets)
    assert len(layout.rows) == expected
    assert sum(1 for row in layout.rows if row.full_width) == pattern.count("f")

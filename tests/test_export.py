"""Tests for PDF export of composed reports."""

import io
import os
from datetime import datetime, timezone as dt_timezone
from unittest import mock

import pytest
from PyPDF2 import PdfReader

from agency_sales import export
from agency_sales.exceptions import ReportExportError
from agency_sales.reports import ChartPalette, ReportConfiguration, compose_report
from agency_sales.widgets import Widget, WidgetDataSource, WidgetType, new_widget

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=dt_timezone.utc)

SALES = [
    {
        "id": i,
        "property_address": f"{i} Beach Rd",
        "property_suburb": "Glenelg",
        "property_type": "House" if i % 2 else "Apartment",
        "agent_name": "Alice" if i % 3 else "Bob",
        "price": str(400000 + i * 50000),
        "status": "sold",
        "listed_date": "2024-01-01",
        "transaction_date": f"2024-0{i}-10",
    }
    for i in range(1, 6)
]


@pytest.fixture
def report():
    config = ReportConfiguration(
        title="Quarterly Sales Review",
        notes="Prepared for the board.",
        period="12months",
        widgets=[
            new_widget(WidgetType.TOTAL_PROPERTIES_SOLD),
            new_widget(WidgetType.TOTAL_REVENUE),
            new_widget(WidgetType.SECTION_TITLE, title="Performance"),
            new_widget(WidgetType.MONTHLY_SALES),
            new_widget(WidgetType.SALES_BY_PROPERTY_TYPE),
            new_widget(WidgetType.PAGE_BREAK),
            new_widget(WidgetType.AGENT_LEADERBOARD),
            new_widget(WidgetType.TOP_SALES),
            new_widget(WidgetType.SALES_BY_SUBURB),
            new_widget(WidgetType.AGENT_COMMISSION),
            new_widget(WidgetType.COLOR_SETTINGS),
            new_widget(WidgetType.TEXT_SECTION, title="Outlook", text="Steady demand."),
            Widget(id="legacy", type="sparkline"),
        ],
        company_name="Harbour Realty",
    )
    source = WidgetDataSource(loader=lambda: SALES, period="12months", now=NOW)
    return compose_report(config, source, now=NOW)


def test_render_chart_returns_png():
    data = {"labels": ["Alice", "Bob"], "data": [3, 1]}
    encoded = export.render_chart(WidgetType.AGENT_LEADERBOARD, data, ChartPalette())
    assert encoded.startswith("iVBORw0KGgo")


def test_render_chart_rejects_non_chart_widget():
    with pytest.raises(ValueError):
        export.render_chart(WidgetType.TOP_SALES, {}, ChartPalette())


def test_html_contains_cover_body_and_closing(report):
    html = export.render_report_html(report)
    assert "Quarterly Sales Review" in html
    assert "Performance" in html
    assert "Unknown widget type: sparkline" in html
    assert "page-break" in html
    assert "Thank You" in html
    assert "data:image/png;base64," in html
    assert "Sales by Location" in html
    assert "Agent Commission" in html


def test_pdf_export_produces_pdf(report):
    pdf = export.render_report_pdf(report)
    assert pdf.startswith(b"%PDF")


def test_conversion_failure_raises_export_error(report):
    with mock.patch.object(export.pisa, "CreatePDF", side_effect=RuntimeError("boom")):
        with pytest.raises(ReportExportError, match="boom"):
            export.render_report_pdf(report)


def test_export_to_file(report, tmp_path):
    path = export.export_report_to_file(report, str(tmp_path / "out"))
    assert os.path.basename(path) == "quarterly-sales-review.pdf"
    with open(path, "rb") as fh:
        assert fh.read(4) == b"%PDF"


def test_failed_write_leaves_no_file(report, tmp_path):
    with mock.patch.object(export.os, "replace", side_effect=OSError("disk full")):
        with pytest.raises(ReportExportError):
            export.export_report_to_file(report, str(tmp_path))
    assert os.listdir(tmp_path) == []


def test_render_location_chart():
    data = {"labels": ["Glenelg", "Norwood"], "data": [4, 2]}
    encoded = export.render_chart(WidgetType.SALES_BY_SUBURB, data, ChartPalette())
    assert encoded.startswith("iVBORw0KGgo")


def _page_count(widgets):
    config = ReportConfiguration(title="Pages", period="all", widgets=widgets)
    source = WidgetDataSource(loader=lambda: SALES, period="all", now=NOW)
    pdf = export.render_report_pdf(compose_report(config, source, now=NOW))
    return len(PdfReader(io.BytesIO(pdf)).pages)


def test_page_break_starts_a_new_pdf_page():
    stat = WidgetType.TOTAL_PROPERTIES_SOLD
    together = _page_count([new_widget(stat), new_widget(stat)])
    split = _page_count([new_widget(stat), new_widget(WidgetType.PAGE_BREAK), new_widget(stat)])
    assert split == together + 1

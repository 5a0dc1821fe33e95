"""PDF export of composed reports.

The composed report is rendered to HTML with the Django template engine
(cover page, body rows, closing page) and converted to PDF by xhtml2pdf.
Charts are drawn with matplotlib and embedded as base64 PNG images.
"""

import base64
import io
import logging
import os
import tempfile
from typing import Any, Optional

import matplotlib

matplotlib.use("Agg")

from django.template.loader import render_to_string
from django.utils.text import slugify
from matplotlib.figure import Figure
from xhtml2pdf import pisa

from .exceptions import ReportExportError
from .reports import Cell, ChartPalette, ComposedReport, Row
from .widgets import ContentState, WidgetCategory, WidgetType, parse_widget_type

logger = logging.getLogger(__name__)

TEMPLATE_NAME = "agency_sales/report.html"


def _figure_to_base64(fig: Figure) -> str:
    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=120, bbox_inches="tight", facecolor="white")
    return base64.b64encode(buf.getvalue()).decode("ascii")


def _colors(palette: ChartPalette, n: int) -> list[str]:
    slots = palette.as_list()
    return [slots[i % len(slots)] for i in range(n)]


def render_chart(widget_type: WidgetType, data: dict[str, list], palette: ChartPalette) -> str:
    """Draw a chart widget's series.

    Args:
        widget_type: One of the chart widget types.
        data: The series bound to the widget.
        palette: Report chart colors.

    Returns:
        Base64 encoded PNG.
    """
    fig = Figure(figsize=(5, 3))
    ax = fig.add_subplot(1, 1, 1)

    if widget_type is WidgetType.MONTHLY_SALES:
        months = data["months"]
        ax.plot(months, data["salesData"], color=palette.primary, marker="o", label="Sales")
        ax.set_ylabel("Sales")
        revenue_ax = ax.twinx()
        revenue_ax.plot(
            months, data["revenueData"], color=palette.secondary, marker="s", label="Revenue"
        )
        revenue_ax.set_ylabel("Revenue ($)")
    elif widget_type is WidgetType.SALES_BY_PROPERTY_TYPE:
        pairs = [(l, v) for l, v in zip(data["labels"], data["data"]) if v]
        labels = [l for l, _ in pairs]
        values = [v for _, v in pairs]
        ax.pie(values, labels=labels, colors=_colors(palette, len(values)), autopct="%1.0f%%")
        ax.axis("equal")
    elif widget_type is WidgetType.AGENT_LEADERBOARD:
        labels = list(reversed(data["labels"]))
        values = list(reversed(data["data"]))
        ax.barh(labels, values, color=_colors(palette, len(values)))
        ax.set_xlabel("Properties Sold")
    elif widget_type is WidgetType.SALES_BY_SUBURB:
        labels = list(reversed(data["labels"]))
        values = list(reversed(data["data"]))
        ax.barh(labels, values, color=palette.secondary)
        ax.set_xlabel("Sales")
    else:
        raise ValueError(f"{widget_type.value} is not a chart widget")

    return _figure_to_base64(fig)


def _cell_context(cell: Cell, palette: ChartPalette) -> dict[str, Any]:
    if cell.is_filler:
        return {"kind": "filler"}

    widget = cell.widget
    content = cell.content
    widget_type = parse_widget_type(widget.type)
    context: dict[str, Any] = {
        "id": widget.id,
        "type": widget.type_id,
        "title": widget.title,
        "state": content.state.value,
        "text": content.text,
        "data": content.data,
    }

    if content.state is ContentState.UNKNOWN or widget_type is None:
        context["kind"] = "placeholder"
        return context
    if not content.is_ready:
        context["kind"] = "message"
        return context

    spec = widget.spec
    if widget_type is WidgetType.SECTION_TITLE:
        context["kind"] = "heading"
        context["heading"] = content.data.get("title") or widget.title
    elif widget_type is WidgetType.TEXT_SECTION:
        context["kind"] = "text"
        context["heading"] = content.data.get("title", "")
        context["body"] = content.data.get("text", "")
    elif widget_type is WidgetType.COLOR_SETTINGS:
        context["kind"] = "colors"
        context["colors"] = list(content.data["colors"].items())
    elif spec.category is WidgetCategory.STATISTICS:
        context["kind"] = "stat"
    elif widget_type is WidgetType.AGENT_COMMISSION:
        context["kind"] = "commission"
    elif spec.category is WidgetCategory.TABLES:
        context["kind"] = "table"
    else:
        context["kind"] = "chart"
        try:
            context["chart"] = render_chart(widget_type, content.data, palette)
        except Exception as e:
            logger.error(f"Chart rendering failed for widget {widget.id}: {e}")
            context["kind"] = "message"
            context["text"] = "Chart unavailable"
    return context


def _row_context(row: Row, palette: ChartPalette) -> dict[str, Any]:
    return {
        "full_width": row.full_width,
        "page_break_before": row.page_break_before,
        "avoid_split": row.avoid_split,
        "cells": [_cell_context(cell, palette) for cell in row.cells],
    }


def render_report_html(report: ComposedReport) -> str:
    """Render a composed report to a standalone HTML document.

    Args:
        report: The composed report.

    Returns:
        HTML string.
    """
    config = report.config
    context = {
        "config": config,
        "rows": [_row_context(row, config.palette) for row in report.layout.rows],
        "generated_at": report.generated_at,
    }
    return render_to_string(TEMPLATE_NAME, context)


def render_report_pdf(report: ComposedReport) -> bytes:
    """Render a composed report to PDF bytes.

    Args:
        report: The composed report.

    Returns:
        The PDF document.

    Raises:
        ReportExportError: If HTML rendering or PDF conversion fails.
    """
    logger.info(f"Exporting report {report.config.title!r} to PDF")
    try:
        html = render_report_html(report)
        buffer = io.BytesIO()
        result = pisa.CreatePDF(html, dest=buffer, encoding="utf-8")
    except Exception as e:
        logger.exception("Report export failed")
        raise ReportExportError(str(e)) from e

    if result.err:
        logger.error(f"PDF conversion reported {result.err} errors")
        raise ReportExportError(f"PDF conversion reported {result.err} errors")

    pdf = buffer.getvalue()
    logger.info(f"Report exported ({len(pdf)} bytes)")
    return pdf


def report_filename(report: ComposedReport) -> str:
    """File name for a downloaded report."""
    return f"{slugify(report.config.title) or 'report'}.pdf"


def export_report_to_file(
    report: ComposedReport, directory: str, filename: Optional[str] = None
) -> str:
    """Write a report's PDF into a directory.

    The PDF is written to a temporary file first and moved into place only
    once it is complete, so a failed export leaves no file behind.

    Args:
        report: The composed report.
        directory: Target directory, created if missing.
        filename: File name; derived from the title when omitted.

    Returns:
        Path of the written PDF.

    Raises:
        ReportExportError: If rendering or writing fails.
    """
    pdf = render_report_pdf(report)
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, filename or report_filename(report))

    fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".pdf.tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(pdf)
        os.replace(tmp_path, path)
    except OSError as e:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise ReportExportError(f"Could not write {path}: {e}") from e
    return path

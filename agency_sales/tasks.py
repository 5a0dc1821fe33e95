"""Batch tasks for the Agency Sales Dashboard.

This module contains the bulk transaction import used for spreadsheet
uploads and the job that refreshes every tenant's sales stats snapshot.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional

from django.db import transaction

from .exceptions import StatsRefreshError
from .forms import TransactionForm
from .listing import parse_numeric
from .models import Agency, Agent, Transaction
from .stats import refresh_sales_stats

logger = logging.getLogger(__name__)

DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y")


@dataclass
class ImportResult:
    """Outcome of a bulk transaction import."""

    created: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


def _parse_date(value: Any) -> Optional[date]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognized date {value!r}")


def _parse_status(value: Any, sold_date: Optional[date]) -> str:
    if not value:
        return Transaction.Status.SOLD if sold_date else Transaction.Status.LISTED
    return str(value).strip().lower().replace(" ", "_").replace("-", "_")


def _parse_property_type(value: Any) -> str:
    text = str(value or "").strip()
    for choice in Transaction.PropertyType:
        if choice.value.lower() == text.lower():
            return choice.value
    return text


def resolve_agent(name: str, agency: Optional[Agency] = None) -> Agent:
    """Find an agent by name within a tenant, creating one if needed.

    Args:
        name: Agent's full name.
        agency: Tenant the agent belongs to.

    Returns:
        The existing or newly created Agent.
    """
    agent = Agent.objects.filter(name__iexact=name, agency=agency).first()
    if agent is None:
        agent = Agent.objects.create(name=name, email="", agency=agency)
        logger.info(f"Created agent {name!r} during import")
    return agent


def _row_to_form_data(row: Mapping[str, Any], agency: Optional[Agency]) -> dict[str, Any]:
    agent_name = str(row.get("agentName") or "").strip()
    if not agent_name:
        raise ValueError("Missing agent name")

    sold_date = _parse_date(row.get("soldDate"))
    return {
        "property_address": str(row.get("propertyAddress") or "").strip(),
        "property_suburb": str(row.get("propertySuburb") or "").strip(),
        "property_postcode": str(row.get("propertyPostcode") or "").strip(),
        "property_type": _parse_property_type(row.get("propertyType")),
        "bedrooms": int(parse_numeric(row.get("bedrooms"))),
        "bathrooms": int(parse_numeric(row.get("bathrooms"))),
        "price": parse_numeric(row.get("price")),
        "agent": resolve_agent(agent_name, agency).pk,
        "agent_name": agent_name,
        "status": _parse_status(row.get("status"), sold_date),
        "listed_date": _parse_date(row.get("listedDate")),
        "transaction_date": sold_date,
        "agency": agency.pk if agency else None,
    }


def import_transactions(
    rows: Iterable[Mapping[str, Any]], agency: Optional[Agency] = None
) -> ImportResult:
    """Import transactions from spreadsheet rows.

    Rows are validated one at a time; invalid rows are skipped and reported.
    All valid rows are saved in a single database transaction, after which
    the tenant's stats snapshot is refreshed.

    Args:
        rows: Mappings with propertyAddress, propertySuburb, propertyType,
            bedrooms, bathrooms, price, status, agentName, listedDate and
            soldDate keys.
        agency: Tenant the rows belong to.

    Returns:
        ImportResult with created and skipped counts.
    """
    result = ImportResult()

    with transaction.atomic():
        for line, row in enumerate(rows, start=1):
            try:
                form = TransactionForm(data=_row_to_form_data(row, agency))
            except ValueError as e:
                result.skipped += 1
                result.errors.append(f"Row {line}: {e}")
                logger.warning(f"Skipping import row {line}: {e}")
                continue

            if not form.is_valid():
                result.skipped += 1
                result.errors.append(f"Row {line}: {form.errors.as_text()}")
                logger.warning(f"Skipping import row {line}: {dict(form.errors)}")
                continue

            form.save()
            result.created += 1
            if result.created % 100 == 0:
                logger.info(f"Imported {result.created} transactions...")

    logger.info(f"Import complete: {result.created} created, {result.skipped} skipped")
    if result.created:
        refresh_sales_stats(agency=agency)
    return result


def refresh_all_stats() -> int:
    """Refresh the all-agencies snapshot and one per active agency.

    A failing agency is logged and skipped.

    Returns:
        Number of snapshots refreshed.
    """
    refreshed = 0
    for agency in [None, *Agency.objects.filter(active=True)]:
        try:
            refresh_sales_stats(agency=agency)
            refreshed += 1
        except StatsRefreshError as e:
            tenant = agency.name if agency else "all agencies"
            logger.error(f"Stats refresh failed for {tenant}: {e}")

    logger.info(f"Refreshed {refreshed} sales stats snapshots")
    return refreshed

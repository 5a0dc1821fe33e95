"""Tests for the bulk import and refresh tasks."""

from decimal import Decimal
from unittest import mock

import pytest
from django.db import DatabaseError

from agency_sales import stats, tasks
from agency_sales.exceptions import StatsRefreshError
from agency_sales.models import Agent, SalesStats, Transaction

pytestmark = pytest.mark.django_db

ROWS = [
    {
        "propertyAddress": "12 Ocean Pde",
        "propertySuburb": "Brighton",
        "propertyType": "house",
        "bedrooms": "4",
        "bathrooms": "2",
        "price": "$1,050,000",
        "status": "Sold",
        "agentName": "Alice Smith",
        "listedDate": "01/02/2024",
        "soldDate": "2024-03-01",
    },
    {
        "propertyAddress": "4/7 King St",
        "propertySuburb": "Norwood",
        "propertyType": "Apartment",
        "price": "420000",
        "agentName": "New Person",
        "listedDate": "2024-04-01",
    },
    {
        "propertyAddress": "Bad row",
        "propertySuburb": "Nowhere",
        "propertyType": "Castle",
        "price": "1",
        "agentName": "Alice Smith",
    },
    {"propertyAddress": "No agent", "propertySuburb": "Nowhere", "propertyType": "Land"},
]


def test_import_creates_valid_rows_and_skips_bad_ones(agency, agent):
    result = tasks.import_transactions(ROWS, agency=agency)

    assert (result.created, result.skipped) == (2, 2)
    assert len(result.errors) == 2

    sold = Transaction.objects.get(property_address="12 Ocean Pde")
    assert sold.agent == agent
    assert sold.price == Decimal("1050000.00")
    assert sold.status == Transaction.Status.SOLD
    assert sold.property_type == Transaction.PropertyType.HOUSE
    assert sold.days_on_market == 29

    listed = Transaction.objects.get(property_address="4/7 King St")
    assert listed.status == Transaction.Status.LISTED
    assert listed.agent.name == "New Person"
    assert listed.agency == agency

    assert SalesStats.objects.get(agency=agency).total_sold == 2


def test_bad_date_skips_row(agency):
    result = tasks.import_transactions(
        [{"propertyAddress": "x", "propertySuburb": "y", "propertyType": "Land",
          "agentName": "Zed", "soldDate": "yesterday"}],
        agency=agency,
    )
    assert result.skipped == 1
    assert not Agent.objects.filter(name="Zed").exists()


def test_refresh_all_stats_covers_each_active_agency(agency, other_agency, make_transaction):
    other_agency.active = False
    other_agency.save()
    make_transaction()

    assert tasks.refresh_all_stats() == 2
    assert SalesStats.objects.filter(agency=None).exists()
    assert SalesStats.objects.filter(agency=agency).exists()
    assert not SalesStats.objects.filter(agency=other_agency).exists()


def test_refresh_all_stats_continues_past_failures(agency):
    calls = []

    def flaky(agency=None):
        calls.append(agency)
        if agency is None:
            raise StatsRefreshError("Failed to update sales stats")

    with mock.patch.object(tasks, "refresh_sales_stats", side_effect=flaky):
        assert tasks.refresh_all_stats() == 1
    assert calls == [None, agency]


def test_refresh_all_stats_continues_past_unreadable_tenant(agency, make_transaction):
    make_transaction()
    real_transactions_for = stats.transactions_for

    def failing_for_all_agencies(scope=None, agent_id=None):
        if scope is None:
            raise DatabaseError("no such column: price")
        return real_transactions_for(scope, agent_id=agent_id)

    with mock.patch.object(stats, "transactions_for", side_effect=failing_for_all_agencies):
        assert tasks.refresh_all_stats() == 1
    assert SalesStats.objects.filter(agency=agency).exists()
    assert not SalesStats.objects.filter(agency=None).exists()

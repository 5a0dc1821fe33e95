"""Tests for the list endpoint FilterSets."""

from datetime import date, timedelta

import pytest
from django.utils import timezone

from agency_sales.filters import AgentFilter, TransactionFilter
from agency_sales.models import Agent, Transaction

pytestmark = pytest.mark.django_db


def filtered(params):
    return TransactionFilter(params, queryset=Transaction.objects.all()).qs


def test_agency_filter_scopes_rows(agency, other_agency, make_transaction):
    other_agent = Agent.objects.create(name="Zed", email="z@x.example", agency=other_agency)
    make_transaction()
    make_transaction(agent=other_agent)

    assert filtered({"agencyId": str(agency.pk)}).count() == 1
    assert filtered({"agencyId": "all"}).count() == 2
    assert filtered({"agencyId": "abc"}).count() == 0


def test_date_range_uses_sale_date(make_transaction):
    today = timezone.now().date()
    make_transaction(listed_date=today - timedelta(days=20), transaction_date=today - timedelta(days=10))
    make_transaction(listed_date=date(2019, 1, 1), transaction_date=date(2019, 2, 1))

    assert filtered({"dateRange": "30days"}).count() == 1
    assert filtered({"dateRange": "all"}).count() == 2
    assert filtered({"dateRange": "fortnight"}).count() == 2


def test_price_bounds(make_transaction):
    make_transaction(price=300000)
    make_transaction(price=900000)
    assert filtered({"minPrice": "500000"}).count() == 1
    assert filtered({"minPrice": "100000", "maxPrice": "400000"}).count() == 1


def test_status_list_ignores_all(make_transaction):
    make_transaction(status=Transaction.Status.WITHDRAWN)
    make_transaction(status=Transaction.Status.SOLD)
    assert filtered({"status": "withdrawn, all"}).count() == 1


def test_agent_name_filter(agent, second_agent):
    qs = AgentFilter({"name": "bob"}, queryset=Agent.objects.all()).qs
    assert list(qs) == [second_agent]

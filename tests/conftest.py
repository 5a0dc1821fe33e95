"""Shared fixtures for the Agency Sales Dashboard tests."""

from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal

import pytest

from agency_sales.models import Agency, Agent, Transaction

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=dt_timezone.utc)


@pytest.fixture
def now() -> datetime:
    """Fixed reference time for period calculations."""
    return NOW


@pytest.fixture
def agency(db) -> Agency:
    """An active agency."""
    return Agency.objects.create(
        name="Harbour Realty",
        contact_name="Jane Doe",
        contact_email="jane@harbour.example",
        rla_number="RLA 1234",
    )


@pytest.fixture
def other_agency(db) -> Agency:
    """A second agency for tenant isolation checks."""
    return Agency.objects.create(
        name="Northside Property",
        contact_name="Sam Lee",
        contact_email="sam@northside.example",
    )


@pytest.fixture
def agent(agency) -> Agent:
    """An agent of the main agency."""
    return Agent.objects.create(name="Alice Smith", email="alice@harbour.example", agency=agency)


@pytest.fixture
def second_agent(agency) -> Agent:
    """Another agent of the main agency."""
    return Agent.objects.create(name="Bob Jones", email="bob@harbour.example", agency=agency)


@pytest.fixture
def make_transaction(agent):
    """Factory creating transactions with sensible defaults."""

    def _make(**overrides) -> Transaction:
        values = {
            "property_address": "1 Main Street",
            "property_suburb": "Mawson Lakes",
            "property_type": Transaction.PropertyType.HOUSE,
            "bedrooms": 3,
            "bathrooms": 2,
            "price": Decimal("500000.00"),
            "agent": agent,
            "status": Transaction.Status.SOLD,
            "listed_date": date(2024, 1, 1),
            "transaction_date": date(2024, 1, 31),
        }
        values.update(overrides)
        return Transaction.objects.create(**values)

    return _make

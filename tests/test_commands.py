"""Tests for the management commands."""

from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from agency_sales.models import SalesStats, Transaction

pytestmark = pytest.mark.django_db


def test_refresh_sales_stats_all(agency, make_transaction):
    make_transaction()
    out = StringIO()
    call_command("refresh_sales_stats", stdout=out)
    assert "Refreshed 2 sales stats snapshots" in out.getvalue()
    assert SalesStats.objects.count() == 2


def test_refresh_sales_stats_single_agency(agency, make_transaction):
    make_transaction()
    out = StringIO()
    call_command("refresh_sales_stats", "--agency", str(agency.pk), stdout=out)
    assert "Harbour Realty: 1 sold" in out.getvalue()


def test_refresh_sales_stats_unknown_agency():
    with pytest.raises(CommandError):
        call_command("refresh_sales_stats", "--agency", "999", stdout=StringIO())


def test_import_transactions_from_csv(tmp_path, agency, agent):
    csv_file = tmp_path / "sales.csv"
    csv_file.write_text(
        "propertyAddress,propertySuburb,propertyType,bedrooms,bathrooms,price,status,agentName,listedDate,soldDate\n"
        '1 Park Ave,Unley,House,3,1,"$850,000",sold,Alice Smith,2024-01-10,2024-02-10\n'
        "2 Park Ave,Unley,Igloo,1,1,100,sold,Alice Smith,,\n",
        encoding="utf-8",
    )
    out = StringIO()
    call_command("import_transactions", str(csv_file), "--agency", str(agency.pk), stdout=out)

    assert "1 created, 1 skipped" in out.getvalue()
    assert Transaction.objects.get().price == 850000


def test_import_transactions_missing_file(tmp_path):
    with pytest.raises(CommandError):
        call_command("import_transactions", str(tmp_path / "missing.csv"), stdout=StringIO())

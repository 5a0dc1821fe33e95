"""Management command to import transactions from a CSV file."""

import csv
import logging
from typing import Any

from django.core.management.base import BaseCommand, CommandError, CommandParser

from agency_sales.models import Agency
from agency_sales.tasks import import_transactions

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Import transactions from a spreadsheet export.

    The CSV header must use the import column names: propertyAddress,
    propertySuburb, propertyType, bedrooms, bathrooms, price, status,
    agentName, listedDate and soldDate.

    Examples:
        python manage.py import_transactions sales.csv --agency 2
    """

    help = "Import transactions from a CSV file"

    def add_arguments(self, parser: CommandParser) -> None:
        """Add command-line arguments.

        Args:
            parser: The argument parser to add arguments to.
        """
        parser.add_argument("csv_file", help="Path to the CSV file")
        parser.add_argument(
            "--agency",
            type=int,
            default=None,
            help="Agency id the transactions belong to",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the command.

        Args:
            *args: Positional arguments.
            **options: Keyword arguments from command line.
        """
        agency = None
        if options["agency"] is not None:
            agency = Agency.objects.filter(pk=options["agency"]).first()
            if agency is None:
                raise CommandError(f"Agency {options['agency']} does not exist")

        path = options["csv_file"]
        try:
            with open(path, newline="", encoding="utf-8-sig") as fh:
                result = import_transactions(csv.DictReader(fh), agency=agency)
        except OSError as e:
            raise CommandError(f"Could not read {path}: {e}") from e

        for error in result.errors:
            self.stdout.write(self.style.WARNING(error))
        self.stdout.write(
            self.style.SUCCESS(
                f"Transactions: {result.created} created, {result.skipped} skipped"
            )
        )

"""Management command to refresh the cached sales stats.

This command can be run once from a scheduler, or left running with
--watch to refresh on a fixed interval.
"""

import logging
import signal
import threading
from typing import Any

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError, CommandParser
from django.utils import timezone

from agency_sales.exceptions import StatsRefreshError
from agency_sales.models import Agency
from agency_sales.scheduler import StatsRefreshScheduler
from agency_sales.stats import refresh_sales_stats
from agency_sales.tasks import refresh_all_stats

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Django management command for refreshing sales stats.

    By default every snapshot (all agencies plus each active agency) is
    recomputed once. Use --agency to refresh a single tenant and --watch to
    keep refreshing in the foreground.

    Examples:
        # Refresh everything once
        python manage.py refresh_sales_stats

        # Refresh one agency
        python manage.py refresh_sales_stats --agency 3

        # Refresh every 10 minutes until interrupted
        python manage.py refresh_sales_stats --watch --interval 10
    """

    help = "Recompute the cached sales statistics"

    def add_arguments(self, parser: CommandParser) -> None:
        """Add command-line arguments.

        Args:
            parser: The argument parser to add arguments to.
        """
        parser.add_argument(
            "--agency",
            type=int,
            default=None,
            help="Only refresh the snapshot for this agency id",
        )
        parser.add_argument(
            "--watch",
            action="store_true",
            help="Keep running and refresh on an interval",
        )
        parser.add_argument(
            "--interval",
            type=int,
            default=None,
            help="Minutes between refreshes in watch mode "
            "(default: SALES_STATS_REFRESH_MINUTES)",
        )

    def refresh_once(self, agency_id: Any) -> None:
        """Refresh the requested snapshots and report the result."""
        if agency_id is None:
            count = refresh_all_stats()
            self.stdout.write(self.style.SUCCESS(f"Refreshed {count} sales stats snapshots"))
            return

        agency = Agency.objects.filter(pk=agency_id).first()
        if agency is None:
            raise CommandError(f"Agency {agency_id} does not exist")
        stats = refresh_sales_stats(agency=agency)
        self.stdout.write(
            self.style.SUCCESS(
                f"{agency.name}: {stats.total_sold} sold, "
                f"${stats.total_revenue:,.2f} revenue, "
                f"{stats.avg_days_on_market} avg days on market"
            )
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the command.

        Args:
            *args: Positional arguments.
            **options: Keyword arguments from command line.
        """
        agency_id = options["agency"]
        interval = options["interval"] or getattr(settings, "SALES_STATS_REFRESH_MINUTES", 10)

        self.stdout.write(
            self.style.NOTICE(
                f"Starting stats refresh at {timezone.now().strftime('%Y-%m-%d %H:%M:%S')}"
            )
        )

        try:
            self.refresh_once(agency_id)
        except StatsRefreshError as e:
            self.stdout.write(self.style.ERROR(f"Refresh failed: {e}"))
            logger.exception("Sales stats refresh failed")
            raise CommandError(str(e)) from e

        if not options["watch"]:
            return

        scheduler = StatsRefreshScheduler(
            lambda: self.refresh_once(agency_id), interval_minutes=interval
        )
        stop_event = threading.Event()
        signal.signal(signal.SIGTERM, lambda signum, frame: stop_event.set())

        self.stdout.write(f"Watching: refreshing every {interval} minutes (Ctrl+C to stop)")
        scheduler.start()
        try:
            stop_event.wait()
        except KeyboardInterrupt:
            pass
        finally:
            scheduler.stop()
            self.stdout.write(self.style.SUCCESS("Stats refresh stopped"))

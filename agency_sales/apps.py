"""Agency sales app configuration."""

from django.apps import AppConfig


class AgencySalesConfig(AppConfig):
    """Configuration for the Agency Sales application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "agency_sales"
    verbose_name = "Agency Sales"

"""Admin configuration for the Agency Sales Dashboard.

This module registers models with the Django admin site and configures
their display and filtering options.
"""

from django.contrib import admin

from .models import Agency, Agent, SalesStats, Setting, Transaction


@admin.register(Agency)
class AgencyAdmin(admin.ModelAdmin):
    """Admin configuration for Agency model."""

    list_display = [
        "name",
        "contact_name",
        "contact_email",
        "rla_number",
        "active",
    ]
    list_filter = ["active"]
    search_fields = ["name", "contact_name", "rla_number"]
    ordering = ["name"]


@admin.register(Agent)
class AgentAdmin(admin.ModelAdmin):
    """Admin configuration for Agent model."""

    list_display = [
        "name",
        "email",
        "phone",
        "role",
        "agency",
    ]
    list_filter = ["agency", "role"]
    search_fields = ["name", "email"]
    ordering = ["name"]


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """Admin configuration for Transaction model."""

    list_display = [
        "property_address",
        "property_suburb",
        "property_type",
        "status",
        "price",
        "agent_name",
        "transaction_date",
    ]
    list_filter = [
        "status",
        "property_type",
        "agency",
    ]
    search_fields = [
        "property_address",
        "property_suburb",
        "property_postcode",
        "agent_name",
    ]
    date_hierarchy = "transaction_date"
    ordering = ["-transaction_date"]


@admin.register(SalesStats)
class SalesStatsAdmin(admin.ModelAdmin):
    """Admin configuration for SalesStats model."""

    list_display = [
        "agency",
        "total_sold",
        "total_revenue",
        "avg_price",
        "avg_days_on_market",
        "updated_at",
    ]
    readonly_fields = [
        "total_sold",
        "total_revenue",
        "avg_price",
        "avg_days_on_market",
        "period_start",
        "period_end",
        "agency",
        "updated_at",
    ]


@admin.register(Setting)
class SettingAdmin(admin.ModelAdmin):
    """Admin configuration for Setting model."""

    list_display = ["key", "value", "category", "agency"]
    list_filter = ["category", "agency"]
    search_fields = ["key", "value"]
    ordering = ["category", "key"]

"""URL configuration for the agency_sales app.

This module defines URL patterns for the Agency Sales Dashboard API.
"""

from django.urls import path

from . import views

app_name = "agency_sales"

urlpatterns = [
    # Agencies
    path("agencies/", views.AgencyListView.as_view(), name="agency_list"),
    path("agencies/<int:pk>/", views.AgencyDetailView.as_view(), name="agency_detail"),
    # Agents
    path("agents/", views.AgentListView.as_view(), name="agent_list"),
    path("agents/<int:pk>/", views.AgentDetailView.as_view(), name="agent_detail"),
    # Transactions
    path("transactions/", views.TransactionListView.as_view(), name="transaction_list"),
    path(
        "transactions/<int:pk>/",
        views.TransactionDetailView.as_view(),
        name="transaction_detail",
    ),
    # Settings
    path("settings/", views.SettingsView.as_view(), name="settings"),
    path("settings/<str:key>/", views.SettingDetailView.as_view(), name="setting_detail"),
    # Stats
    path("stats/", views.StatsView.as_view(), name="stats"),
    path("stats/update/", views.StatsUpdateView.as_view(), name="stats_update"),
    # Charts
    path(
        "charts/monthly-sales/",
        views.MonthlySalesChartView.as_view(),
        name="chart_monthly_sales",
    ),
    path(
        "charts/agent-performance/",
        views.AgentPerformanceChartView.as_view(),
        name="chart_agent_performance",
    ),
    path(
        "charts/property-types/",
        views.PropertyTypeChartView.as_view(),
        name="chart_property_types",
    ),
    path("charts/locations/", views.LocationChartView.as_view(), name="chart_locations"),
    path(
        "charts/price-ranges/",
        views.PriceRangeChartView.as_view(),
        name="chart_price_ranges",
    ),
    path(
        "charts/agent-commission/",
        views.AgentCommissionView.as_view(),
        name="chart_agent_commission",
    ),
    # Reports
    path("reports/widgets/", views.WidgetRegistryView.as_view(), name="report_widgets"),
    path("reports/export/", views.ReportExportView.as_view(), name="report_export"),
]

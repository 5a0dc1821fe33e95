"""Django filters for the Agency Sales Dashboard.

This module contains FilterSets that narrow agent and transaction querysets
from the query parameters of the list endpoints. The "all" value of any
choice parameter means no constraint.
"""

import django_filters
from django.db.models import Q, QuerySet

from .listing import UNSET_FILTER_VALUES
from .models import Agent, Transaction
from .stats import PERIOD_WINDOWS, resolve_period


def _is_unset(value) -> bool:
    return value in UNSET_FILTER_VALUES


class AgencyScopedFilter(django_filters.FilterSet):
    """Base FilterSet for models carrying an agency foreign key."""

    def filter_agency(self, queryset: QuerySet, name: str, value: str) -> QuerySet:
        """Filter rows by agency id.

        Args:
            queryset: The queryset to filter.
            name: The filter field name.
            value: The agency id, or "all".

        Returns:
            Filtered queryset. A non-numeric id matches nothing.
        """
        if _is_unset(value):
            return queryset
        if not str(value).isdigit():
            return queryset.none()
        return queryset.filter(agency_id=int(value))


class TransactionFilter(AgencyScopedFilter):
    """Filter for the transaction list.

    Allows filtering by property type, status, agent, agency, period bucket
    and price range.
    """

    propertyType = django_filters.CharFilter(
        method="filter_property_type",
        label="Property Type",
    )
    status = django_filters.CharFilter(
        method="filter_status",
        label="Status",
        help_text="Single status or comma separated list",
    )
    agentId = django_filters.CharFilter(
        method="filter_agent",
        label="Agent",
    )
    agencyId = django_filters.CharFilter(
        method="filter_agency",
        label="Agency",
    )
    dateRange = django_filters.CharFilter(
        method="filter_date_range",
        label="Date Range",
    )
    minPrice = django_filters.NumberFilter(
        field_name="price",
        lookup_expr="gte",
        label="Min Price ($)",
    )
    maxPrice = django_filters.NumberFilter(
        field_name="price",
        lookup_expr="lte",
        label="Max Price ($)",
    )

    class Meta:
        """Meta options for TransactionFilter."""

        model = Transaction
        fields = [
            "propertyType",
            "status",
            "agentId",
            "agencyId",
            "dateRange",
            "minPrice",
            "maxPrice",
        ]

    def filter_property_type(self, queryset: QuerySet, name: str, value: str) -> QuerySet:
        """Filter transactions by property type.

        Args:
            queryset: The queryset to filter.
            name: The filter field name.
            value: The property type, or "all".

        Returns:
            Filtered queryset.
        """
        if _is_unset(value):
            return queryset
        return queryset.filter(property_type__iexact=value)

    def filter_status(self, queryset: QuerySet, name: str, value: str) -> QuerySet:
        """Filter transactions by one or more statuses.

        Args:
            queryset: The queryset to filter.
            name: The filter field name.
            value: Comma separated statuses, or "all".

        Returns:
            Filtered queryset.
        """
        statuses = [s.strip() for s in (value or "").split(",") if not _is_unset(s.strip())]
        if not statuses:
            return queryset
        return queryset.filter(status__in=statuses)

    def filter_agent(self, queryset: QuerySet, name: str, value: str) -> QuerySet:
        """Filter transactions by agent id.

        Args:
            queryset: The queryset to filter.
            name: The filter field name.
            value: The agent id, or "all".

        Returns:
            Filtered queryset. A non-numeric id matches nothing.
        """
        if _is_unset(value):
            return queryset
        if not str(value).isdigit():
            return queryset.none()
        return queryset.filter(agent_id=int(value))

    def filter_date_range(self, queryset: QuerySet, name: str, value: str) -> QuerySet:
        """Filter transactions sold within a period bucket.

        Args:
            queryset: The queryset to filter.
            name: The filter field name.
            value: One of the period selectors, or "all".

        Returns:
            Filtered queryset. Unknown selectors are ignored.
        """
        if _is_unset(value) or value not in PERIOD_WINDOWS:
            return queryset
        window = resolve_period(value)
        if window.start is None:
            return queryset
        return queryset.filter(
            transaction_date__gte=window.start.date(),
            transaction_date__lte=window.end.date(),
        )


class AgentFilter(AgencyScopedFilter):
    """Filter for the agent list.

    Allows filtering by agency and name.
    """

    agencyId = django_filters.CharFilter(
        method="filter_agency",
        label="Agency",
    )
    name = django_filters.CharFilter(
        method="filter_name",
        label="Agent Name",
    )

    class Meta:
        """Meta options for AgentFilter."""

        model = Agent
        fields = ["agencyId", "name"]

    def filter_name(self, queryset: QuerySet, name: str, value: str) -> QuerySet:
        """Filter agents by name or email.

        Args:
            queryset: The queryset to filter.
            name: The filter field name.
            value: The search value.

        Returns:
            Filtered queryset.
        """
        if not value:
            return queryset
        return queryset.filter(Q(name__icontains=value) | Q(email__icontains=value))

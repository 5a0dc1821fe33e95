"""Views for the Agency Sales Dashboard API.

This module contains JSON views for CRUD over agencies, agents,
transactions and settings, the sales stats snapshot, chart series, and PDF
report export.
"""

import json
import logging
from typing import Any, Optional

from django.conf import settings
from django.core.exceptions import FieldDoesNotExist
from django.core.paginator import Paginator
from django.db import models
from django.db.models import F, ProtectedError, Q, QuerySet
from django.db.models.functions import Lower
from django.http import Http404, HttpRequest, HttpResponse, JsonResponse
from django.shortcuts import get_object_or_404
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from . import stats
from .exceptions import InvalidReportConfig, ReportExportError, StatsRefreshError
from .export import render_report_pdf, report_filename
from .filters import AgentFilter, TransactionFilter
from .forms import AgencyForm, AgentForm, SettingForm, TransactionForm, bind_form
from .listing import DESC, ListQuery, PageResult, SortState, filter_items, sort_items
from .models import Agency, Agent, Setting, Transaction
from .reports import ReportConfiguration, compose_report
from .serializers import (
    AGENCY_FIELDS,
    AGENT_FIELDS,
    TRANSACTION_FIELDS,
    agency_to_dict,
    agent_to_dict,
    sales_stats_to_dict,
    setting_to_dict,
    to_form_data,
    transaction_to_dict,
)
from .widgets import WidgetDataSource, registry_listing

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 500

COMMISSION_SORT_KEYS = (
    "name",
    "listings",
    "totalCommission",
    "averageCommission",
    "commissionPercent",
    "auctionPercent",
)


class BadRequest(Exception):
    """Raised inside a view to answer 400 with a message."""


def _int_param(value: Optional[str], default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@method_decorator(csrf_exempt, name="dispatch")
class JsonView(View):
    """Base view answering JSON and translating common errors."""

    def dispatch(self, request: HttpRequest, *args: Any, **kwargs: Any) -> HttpResponse:
        """Dispatch the request, mapping errors to JSON responses.

        Args:
            request: The incoming request.
            *args: Positional URL arguments.
            **kwargs: Keyword URL arguments.

        Returns:
            The handler's response or a JSON error response.
        """
        try:
            return super().dispatch(request, *args, **kwargs)
        except Http404:
            return JsonResponse({"error": "Not found"}, status=404)
        except BadRequest as e:
            return JsonResponse({"error": str(e)}, status=400)

    def parse_json(self, request: HttpRequest) -> dict[str, Any]:
        """Decode a JSON object from the request body.

        Raises:
            BadRequest: If the body is not a JSON object.
        """
        try:
            payload = json.loads(request.body or b"{}")
        except (ValueError, UnicodeDecodeError) as e:
            raise BadRequest("Invalid JSON body") from e
        if not isinstance(payload, dict):
            raise BadRequest("JSON body must be an object")
        return payload

    def get_agency(self, request: HttpRequest) -> Optional[Agency]:
        """Resolve the tenant named by the agencyId query parameter.

        Returns:
            The Agency, or None when no tenant is requested.

        Raises:
            Http404: If the agency does not exist.
        """
        agency_id = request.GET.get("agencyId")
        if agency_id in (None, "", "all"):
            return None
        if not str(agency_id).isdigit():
            raise Http404
        return get_object_or_404(Agency, pk=int(agency_id))

    @staticmethod
    def form_errors(form) -> JsonResponse:
        """Answer 400 with a form's validation errors."""
        return JsonResponse({"errors": form.errors.get_json_data()}, status=400)


class ModelCrudMixin:
    """Shared create/update/delete handlers for the CRUD views."""

    model = None
    form_class = None
    field_map: dict[str, str] = {}
    serialize = None

    def create_object(self, request: HttpRequest, defaults: Optional[dict] = None) -> JsonResponse:
        """Validate a payload and create an object."""
        data = {**(defaults or {}), **to_form_data(self.parse_json(request), self.field_map)}
        form = bind_form(self.form_class, data)
        if not form.is_valid():
            return self.form_errors(form)
        obj = form.save()
        logger.info(f"Created {self.model.__name__} {obj.pk}")
        return JsonResponse(type(self).serialize(obj), status=201)

    def update_object(self, request: HttpRequest, pk: int) -> JsonResponse:
        """Validate a partial payload and update an object."""
        obj = get_object_or_404(self.model, pk=pk)
        data = to_form_data(self.parse_json(request), self.field_map)
        form = bind_form(self.form_class, data, instance=obj)
        if not form.is_valid():
            return self.form_errors(form)
        obj = form.save()
        return JsonResponse(type(self).serialize(obj))

    def delete_object(self, pk: int) -> JsonResponse:
        """Delete an object unless other rows still depend on it."""
        obj = get_object_or_404(self.model, pk=pk)
        try:
            obj.delete()
        except ProtectedError:
            return JsonResponse(
                {"error": f"{self.model.__name__} is still referenced by other records"},
                status=409,
            )
        logger.info(f"Deleted {self.model.__name__} {pk}")
        return JsonResponse({"success": True})


def _build_list_query(
    request: HttpRequest,
    field_map: dict[str, str],
    search_fields: tuple[str, ...],
    default_sort: SortState,
) -> ListQuery:
    params = request.GET
    sort_by = params.get("sortBy")
    sort_key = field_map.get(sort_by, sort_by)
    if sort_key in ("agent", "agency"):
        sort_key = f"{sort_key}_id"
    allowed = {value if value not in ("agent", "agency") else f"{value}_id" for value in field_map.values()}
    allowed.add("id")
    page_size = min(max(_int_param(params.get("pageSize"), DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)
    return ListQuery(
        search=params.get("search", "").strip(),
        search_fields=search_fields,
        sort=default_sort.select(sort_key, params.get("sortDirection"), allowed=allowed),
        page=_int_param(params.get("page"), 1),
        page_size=page_size,
    )


def _order_expression(model: type[models.Model], key: str, descending: bool):
    try:
        field = model._meta.get_field(key)
    except FieldDoesNotExist:
        field = None
    expression = Lower(key) if isinstance(field, (models.CharField, models.TextField)) else F(key)
    # Missing values sort last ascending, so they come first descending.
    if descending:
        return expression.desc(nulls_first=True)
    return expression.asc(nulls_last=True)


def page_queryset(queryset: QuerySet, query: ListQuery) -> PageResult:
    """Search, sort and paginate a queryset in the database.

    Text columns sort case-insensitively and rows with equal values are
    ordered by id, so a descending page is the exact reverse of the
    ascending one. Pages past the end are empty.

    Args:
        queryset: Already filtered rows.
        query: Search term, sort and page of the view.

    Returns:
        The requested page and the total number of matching rows.
    """
    if query.search and query.search_fields:
        condition = Q()
        for name in query.search_fields:
            condition |= Q(**{f"{name}__icontains": query.search})
        queryset = queryset.filter(condition)

    descending = query.sort.direction == DESC
    ordering = []
    if query.sort.key and query.sort.key != "id":
        ordering.append(_order_expression(queryset.model, query.sort.key, descending))
    ordering.append("-id" if descending else "id")
    queryset = queryset.order_by(*ordering)

    page_size = max(query.page_size, 1)
    page_number = max(query.page, 1)
    paginator = Paginator(queryset, page_size)
    if page_number > paginator.num_pages:
        items = []
    else:
        items = list(paginator.page(page_number).object_list)
    return PageResult(items=items, total=paginator.count, page=page_number, page_size=page_size)


class AgencyListView(ModelCrudMixin, JsonView):
    """List and create agencies."""

    model = Agency
    form_class = AgencyForm
    field_map = AGENCY_FIELDS
    serialize = staticmethod(agency_to_dict)

    def get(self, request: HttpRequest) -> JsonResponse:
        """List agencies."""
        query = _build_list_query(
            request, AGENCY_FIELDS, ("name", "contact_name", "rla_number"), SortState(key="name")
        )
        page = page_queryset(Agency.objects.all(), query)
        return JsonResponse(page.as_envelope(agency_to_dict))

    def post(self, request: HttpRequest) -> JsonResponse:
        """Create an agency."""
        return self.create_object(request, defaults={"active": True})


class AgencyDetailView(ModelCrudMixin, JsonView):
    """Read and update one agency."""

    model = Agency
    form_class = AgencyForm
    field_map = AGENCY_FIELDS
    serialize = staticmethod(agency_to_dict)

    def get(self, request: HttpRequest, pk: int) -> JsonResponse:
        """Get an agency."""
        return JsonResponse(agency_to_dict(get_object_or_404(Agency, pk=pk)))

    def patch(self, request: HttpRequest, pk: int) -> JsonResponse:
        """Update an agency."""
        return self.update_object(request, pk)


class AgentListView(ModelCrudMixin, JsonView):
    """List and create agents."""

    model = Agent
    form_class = AgentForm
    field_map = AGENT_FIELDS
    serialize = staticmethod(agent_to_dict)

    def get(self, request: HttpRequest) -> JsonResponse:
        """List agents, filtered by agency and name."""
        filterset = AgentFilter(request.GET, queryset=Agent.objects.all())
        if not filterset.is_valid():
            return self.form_errors(filterset.form)
        query = _build_list_query(
            request, AGENT_FIELDS, ("name", "email", "role"), SortState(key="name")
        )
        page = page_queryset(filterset.qs, query)
        return JsonResponse(page.as_envelope(agent_to_dict))

    def post(self, request: HttpRequest) -> JsonResponse:
        """Create an agent."""
        return self.create_object(request)


class AgentDetailView(ModelCrudMixin, JsonView):
    """Read, update and delete one agent."""

    model = Agent
    form_class = AgentForm
    field_map = AGENT_FIELDS
    serialize = staticmethod(agent_to_dict)

    def get(self, request: HttpRequest, pk: int) -> JsonResponse:
        """Get an agent."""
        return JsonResponse(agent_to_dict(get_object_or_404(Agent, pk=pk)))

    def patch(self, request: HttpRequest, pk: int) -> JsonResponse:
        """Update an agent."""
        return self.update_object(request, pk)

    def delete(self, request: HttpRequest, pk: int) -> JsonResponse:
        """Delete an agent with no transactions."""
        return self.delete_object(pk)


class TransactionListView(ModelCrudMixin, JsonView):
    """List and create transactions."""

    model = Transaction
    form_class = TransactionForm
    field_map = TRANSACTION_FIELDS
    serialize = staticmethod(transaction_to_dict)

    search_fields = ("property_address", "property_suburb", "property_postcode", "agent_name")

    def get_queryset(self) -> QuerySet[Transaction]:
        """Get the base queryset before filters."""
        return Transaction.objects.select_related("agent")

    def get(self, request: HttpRequest) -> JsonResponse:
        """List transactions with filters, search, sorting and paging.

        Query parameters: page, pageSize, sortBy, sortDirection, search,
        propertyType, status, agentId, agencyId, dateRange, minPrice,
        maxPrice.
        """
        filterset = TransactionFilter(request.GET, queryset=self.get_queryset())
        if not filterset.is_valid():
            return self.form_errors(filterset.form)
        query = _build_list_query(
            request,
            TRANSACTION_FIELDS,
            self.search_fields,
            SortState(key="transaction_date", direction=DESC),
        )
        page = page_queryset(filterset.qs, query)
        return JsonResponse(page.as_envelope(transaction_to_dict))

    def post(self, request: HttpRequest) -> JsonResponse:
        """Create a transaction."""
        return self.create_object(request)


class TransactionDetailView(ModelCrudMixin, JsonView):
    """Read, update and delete one transaction."""

    model = Transaction
    form_class = TransactionForm
    field_map = TRANSACTION_FIELDS
    serialize = staticmethod(transaction_to_dict)

    def get(self, request: HttpRequest, pk: int) -> JsonResponse:
        """Get a transaction."""
        return JsonResponse(transaction_to_dict(get_object_or_404(Transaction, pk=pk)))

    def patch(self, request: HttpRequest, pk: int) -> JsonResponse:
        """Update a transaction, e.g. a status change."""
        return self.update_object(request, pk)

    def delete(self, request: HttpRequest, pk: int) -> JsonResponse:
        """Delete a transaction."""
        return self.delete_object(pk)


class SettingsView(JsonView):
    """List settings and upsert one by key."""

    def get(self, request: HttpRequest) -> JsonResponse:
        """List settings, optionally for one category."""
        queryset = Setting.objects.filter(agency=self.get_agency(request))
        category = request.GET.get("category")
        if category:
            queryset = queryset.filter(category=category)
        return JsonResponse({"data": [setting_to_dict(s) for s in queryset], "total": queryset.count()})

    def put(self, request: HttpRequest) -> JsonResponse:
        """Create or update a setting."""
        form = SettingForm(data=self.parse_json(request))
        if not form.is_valid():
            return self.form_errors(form)
        setting = Setting.upsert(
            key=form.cleaned_data["key"],
            value=form.cleaned_data["value"],
            category=form.cleaned_data["category"] or Setting.Category.GENERAL,
            agency=self.get_agency(request),
        )
        return JsonResponse(setting_to_dict(setting))


class SettingDetailView(JsonView):
    """Read one setting by key."""

    def get(self, request: HttpRequest, key: str) -> JsonResponse:
        """Get a setting."""
        setting = get_object_or_404(Setting, key=key, agency=self.get_agency(request))
        return JsonResponse(setting_to_dict(setting))


class StatsView(JsonView):
    """Current sales stats snapshot."""

    def get(self, request: HttpRequest) -> JsonResponse:
        """Get the cached snapshot, or zeros if none has been computed."""
        cached = stats.get_sales_stats(self.get_agency(request))
        if cached is None:
            return JsonResponse(stats.StatsSnapshot().as_dict())
        return JsonResponse(sales_stats_to_dict(cached))


class StatsUpdateView(JsonView):
    """Recompute the sales stats snapshot."""

    def post(self, request: HttpRequest) -> JsonResponse:
        """Recompute the snapshot and return it."""
        try:
            updated = stats.refresh_sales_stats(agency=self.get_agency(request))
        except StatsRefreshError as e:
            return JsonResponse({"error": str(e)}, status=503)
        return JsonResponse(sales_stats_to_dict(updated))


class ChartView(JsonView):
    """Base view for chart series scoped by agency, agent and period."""

    def get_transactions(self, request: HttpRequest) -> list:
        """Transactions in the requested scope."""
        agent_id = _int_param(request.GET.get("agentId"), 0) or None
        return list(stats.transactions_for(self.get_agency(request), agent_id=agent_id))

    def get_period_transactions(self, request: HttpRequest) -> list:
        """Transactions in scope that sold inside the requested period.

        Without a period parameter every transaction in scope is returned.
        """
        transactions = self.get_transactions(request)
        period = request.GET.get("period")
        if not period:
            return transactions
        window = stats.resolve_period(period)
        return [t for t in transactions if stats.in_period(t, window)]


class MonthlySalesChartView(ChartView):
    """Monthly sales count and revenue."""

    def get(self, request: HttpRequest) -> JsonResponse:
        """Get the monthly series for the requested period."""
        series = stats.monthly_sales_series(
            self.get_transactions(request), request.GET.get("period", "6months")
        )
        return JsonResponse(series)


class AgentPerformanceChartView(ChartView):
    """Closed sales per agent."""

    def get(self, request: HttpRequest) -> JsonResponse:
        """Get the agent performance series."""
        limit = _int_param(request.GET.get("limit"), 0) or None
        return JsonResponse(stats.agent_performance_series(self.get_transactions(request), limit))


class PropertyTypeChartView(ChartView):
    """Transactions per property type."""

    def get(self, request: HttpRequest) -> JsonResponse:
        """Get the property type breakdown."""
        return JsonResponse(stats.property_type_breakdown(self.get_transactions(request)))


class LocationChartView(ChartView):
    """Closed sales per suburb."""

    def get(self, request: HttpRequest) -> JsonResponse:
        """Get the sales by location series."""
        limit = _int_param(request.GET.get("limit"), 0) or None
        return JsonResponse(stats.location_series(self.get_period_transactions(request), limit))


class PriceRangeChartView(ChartView):
    """Transactions per price band."""

    def get(self, request: HttpRequest) -> JsonResponse:
        """Get the price range distribution."""
        return JsonResponse(stats.price_range_series(self.get_period_transactions(request)))


class AgentCommissionView(ChartView):
    """Commission earned per agent."""

    def get(self, request: HttpRequest) -> JsonResponse:
        """Get one commission row per agent.

        Rows can be searched by name and sorted by any column; every column
        opens in descending order, highest earner first by default.
        """
        rate = stats.get_commission_rate(self.get_agency(request))
        rows = stats.agent_commission_rows(self.get_period_transactions(request), rate)
        rows = filter_items(rows, request.GET.get("search", "").strip(), ("name",))
        sort = SortState(key="totalCommission", direction=DESC, view_default=DESC).select(
            request.GET.get("sortBy"),
            request.GET.get("sortDirection"),
            allowed=COMMISSION_SORT_KEYS,
        )
        return JsonResponse(sort_items(rows, sort, tiebreak_key="name"), safe=False)


class WidgetRegistryView(JsonView):
    """Widget types available to the report builder."""

    def get(self, request: HttpRequest) -> JsonResponse:
        """List widget types."""
        return JsonResponse({"data": registry_listing()})


class ReportExportView(JsonView):
    """Compose a report and return it as a PDF download."""

    def post(self, request: HttpRequest) -> HttpResponse:
        """Export the posted report configuration.

        The body is a report configuration (title, notes, period, agentId,
        widgets, chartColors, coverImage, lastPageTitle,
        lastPageDescription). Company name and logo default to the
        tenant's branding settings.
        """
        agency = self.get_agency(request)
        try:
            config = ReportConfiguration.from_dict(self.parse_json(request))
        except InvalidReportConfig as e:
            return JsonResponse({"error": str(e)}, status=400)

        if config.agent_id is not None:
            scope = {"agency": agency} if agency else {}
            agent = get_object_or_404(Agent, pk=config.agent_id, **scope)
            config.agent_name = agent.name
        config.company_name = config.company_name or (
            Setting.get_value("companyName", agency=agency) or (agency.name if agency else "")
        )
        config.logo_url = config.logo_url or (
            Setting.get_value("logoUrl", agency=agency) or (agency.logo_url if agency else "") or ""
        )

        source = WidgetDataSource.for_tenant(
            agency,
            agent_id=config.agent_id,
            period=config.period,
            top_sales_limit=getattr(settings, "SALES_REPORT_TOP_SALES_LIMIT", 5),
            commission_rate=stats.get_commission_rate(agency),
        )
        report = compose_report(config, source)
        try:
            pdf = render_report_pdf(report)
        except ReportExportError as e:
            return JsonResponse({"error": "Export failed", "detail": str(e)}, status=500)

        response = HttpResponse(pdf, content_type="application/pdf")
        response["Content-Disposition"] = f'attachment; filename="{report_filename(report)}"'
        return response

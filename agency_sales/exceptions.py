"""Exceptions raised by the Agency Sales Dashboard."""


class SalesDashboardError(Exception):
    """Base class for dashboard errors."""


class StatsRefreshError(SalesDashboardError):
    """Raised when the sales stats snapshot could not be persisted."""


class InvalidReportConfig(SalesDashboardError):
    """Raised when a report configuration payload cannot be parsed."""


class ReportExportError(SalesDashboardError):
    """Raised when a composed report could not be rendered to PDF."""

"""
Error types raised by the store, the aggregation engine and the ingestion adapters.
Routes translate these into HTTP 500 responses with a generic message.
"""


class DashboardError(Exception):
    """Base class for all application errors."""


class UpstreamError(DashboardError):
    """Network or auth failure talking to Strava, Google or UTMB."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class StoreError(DashboardError):
    """Connectivity or constraint failure in the relational store."""


class AggregationError(DashboardError):
    """A statistics query could not be completed."""


class ConfigurationError(DashboardError):
    """A mandatory setting (credentials, ids) is missing."""

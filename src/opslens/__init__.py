"""Telemetry aggregation and operational health engine."""

from opslens.config import EngineSettings
from opslens.core.buckets import Window
from opslens.core.events import query_event, request_event
from opslens.core.exceptions import (
    InvalidQueryError,
    InvalidWindowError,
    OpslensError,
    StoreUnavailableError,
)
from opslens.core.models import (
    EventFilter,
    JobDefinition,
    JobExecution,
    JobHealth,
    JobStatus,
    QueryEvent,
    RequestEvent,
    SystemHealth,
    TimeRange,
)
from opslens.core.service import TelemetryQuery, TelemetryQueryService

__version__ = "0.1.0"

__all__ = [
    "EngineSettings",
    "EventFilter",
    "InvalidQueryError",
    "InvalidWindowError",
    "JobDefinition",
    "JobExecution",
    "JobHealth",
    "JobStatus",
    "OpslensError",
    "QueryEvent",
    "RequestEvent",
    "StoreUnavailableError",
    "SystemHealth",
    "TelemetryQuery",
    "TelemetryQueryService",
    "TimeRange",
    "Window",
    "query_event",
    "request_event",
]

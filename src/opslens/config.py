"""Engine settings with defaults, dict overrides and environment overrides."""

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from typing import Any

from opslens.core.health import DEFAULT_DEGRADED_THRESHOLD, DEFAULT_JOB_LOOKBACK
from opslens.core.models import SLOW_REQUEST_THRESHOLD_MS, JobDefinition

ENV_PREFIX = "OPSLENS_"


@dataclass(frozen=True)
class EngineSettings:
    """Tunables for the query service.

    Attributes:
        max_events: Hard cap on events fetched per query (most recent kept).
        max_executions: Hard cap on job executions fetched per query.
        top_volume_limit: Length of the top-by-volume lists.
        top_latency_limit: Length of the top-by-latency lists.
        request_min_samples: Minimum requests for a route to be ranked by p95.
        query_min_samples: Minimum queries for an operation to be ranked.
        perf_min_samples: Minimum requests for an endpoint to be ranked.
        perf_list_limit: Length of the perf report's slowest/most frequent lists.
        recent_limit: Length of recent slow request and recent error lists.
        perf_slow_threshold_ms: Requests strictly slower than this are listed
            as recent slow requests in the perf report.
        recent_per_group: Newest requests kept per endpoint in the perf report.
        recent_slow_queries_limit: Length of the recent slow query list.
        error_message_length: Error messages are cut to this many characters
            in reports.
        degraded_threshold: More server errors than this marks the system
            degraded.
        job_lookback: Seconds of history a recent success must fall within
            to keep a failing job healthy.
        jobs: Scheduled jobs reported even before their first run.
    """

    max_events: int = 10_000
    max_executions: int = 1_000
    top_volume_limit: int = 20
    top_latency_limit: int = 10
    request_min_samples: int = 5
    query_min_samples: int = 3
    perf_min_samples: int = 3
    perf_list_limit: int = 10
    recent_limit: int = 20
    perf_slow_threshold_ms: int = SLOW_REQUEST_THRESHOLD_MS
    recent_per_group: int = 10
    recent_slow_queries_limit: int = 50
    error_message_length: int = 200
    degraded_threshold: int = DEFAULT_DEGRADED_THRESHOLD
    job_lookback: int = DEFAULT_JOB_LOOKBACK
    jobs: tuple[JobDefinition, ...] = ()

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, int) and value < 0:
                raise ValueError(f"{f.name} must be non-negative, got {value}")

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "EngineSettings":
        """Build settings from a mapping, keeping defaults for missing keys.

        ``jobs`` may be given as a list of mappings with ``name``,
        ``display_name``, ``description`` and ``schedule`` keys.

        Raises:
            ValueError: On unknown keys or values that are not integers.
        """
        known = {f.name for f in fields(EngineSettings)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")
        overrides: dict[str, Any] = {}
        for key, value in data.items():
            if key == "jobs":
                overrides[key] = tuple(_job_definition(job) for job in value)
            else:
                overrides[key] = _as_int(key, value)
        return replace(EngineSettings(), **overrides)

    @staticmethod
    def from_env(
        environ: Mapping[str, str] | None = None, prefix: str = ENV_PREFIX
    ) -> "EngineSettings":
        """Build settings from environment variables such as OPSLENS_MAX_EVENTS.

        Job definitions cannot be set from the environment.
        """
        env = os.environ if environ is None else environ
        data = {}
        for f in fields(EngineSettings):
            if f.name == "jobs":
                continue
            raw = env.get(f"{prefix}{f.name.upper()}")
            if raw is not None:
                data[f.name] = raw
        return EngineSettings.from_dict(data)


def _as_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be an integer, got {value!r}") from None


def _job_definition(value: JobDefinition | Mapping[str, Any]) -> JobDefinition:
    if isinstance(value, JobDefinition):
        return value
    return JobDefinition(
        name=value["name"],
        display_name=value.get("display_name", value["name"]),
        description=value.get("description", ""),
        schedule=value.get("schedule"),
    )

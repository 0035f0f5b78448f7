"""JSON encoder for reports.

Produces the camelCase documents consumed by dashboards. Timestamps are
rendered as ISO-8601 UTC strings with millisecond precision.
"""

import json
from datetime import datetime, timezone
from typing import Any

from opslens.core.aggregation import GroupSummary, StatusCounts, TimeSeriesPoint, Totals
from opslens.core.health import JobReport
from opslens.core.models import JobExecution, QueryEvent, RequestEvent
from opslens.core.reports import OpsReport, PerfReport, QueryMetricsReport, RequestMetricsReport
from opslens.core.stats import DurationSummary, whole_percent

Report = RequestMetricsReport | QueryMetricsReport | PerfReport | OpsReport


def iso_timestamp(timestamp: float | None) -> str | None:
    """Format a Unix timestamp like ``2024-01-01T00:00:00.000Z``."""
    if timestamp is None:
        return None
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def _percentiles(d: DurationSummary) -> dict[str, int]:
    return {"p50": d.p50, "p95": d.p95, "p99": d.p99, "avgDuration": d.avg}


def _request_point(point: TimeSeriesPoint) -> dict[str, Any]:
    return {
        "timestamp": iso_timestamp(point.timestamp),
        "requests": point.count,
        "errors": point.errors,
        "errorRate": point.error_rate,
        **_percentiles(point.durations),
    }


def _query_point(point: TimeSeriesPoint) -> dict[str, Any]:
    return {
        "timestamp": iso_timestamp(point.timestamp),
        "queries": point.count,
        "slowQueries": point.slow,
        "errors": point.errors,
        "errorRate": point.error_rate,
        **_percentiles(point.durations),
    }


def _request_totals(totals: Totals) -> dict[str, Any]:
    return {
        "requests": totals.count,
        "errors": totals.errors,
        "errorRate": totals.error_rate,
        **_percentiles(totals.durations),
    }


def _route_entry(summary: GroupSummary) -> dict[str, Any]:
    return {
        **summary.labels,
        "requests": summary.count,
        "errors": summary.errors,
        "errorRate": summary.error_rate,
        **_percentiles(summary.durations),
        "maxDuration": summary.durations.max,
        "methods": list(summary.sub_dimensions),
    }


def _operation_entry(summary: GroupSummary) -> dict[str, Any]:
    return {
        **summary.labels,
        "queries": summary.count,
        "slowQueries": summary.slow,
        "errors": summary.errors,
        "slowRate": summary.slow_rate,
        "errorRate": summary.error_rate,
        **_percentiles(summary.durations),
        "maxDuration": summary.durations.max,
    }


def _request_event(event: RequestEvent) -> dict[str, Any]:
    return {
        "route": event.route,
        "method": event.method,
        "statusCode": event.status_code,
        "durationMs": event.duration_ms,
        "timestamp": iso_timestamp(event.timestamp),
    }


def _error_event(event: RequestEvent) -> dict[str, Any]:
    return {
        **_request_event(event),
        "errorCode": event.error_code,
        "errorMessage": event.error_message,
    }


def _query_event(event: QueryEvent) -> dict[str, Any]:
    return {
        "timestamp": iso_timestamp(event.timestamp),
        "model": event.model,
        "action": event.action,
        "durationMs": event.duration_ms,
        "success": event.success,
        "recordCount": event.record_count,
        "error": event.error,
    }


def _endpoint_entry(summary: GroupSummary) -> dict[str, Any]:
    d = summary.durations
    return {
        **summary.labels,
        "count": summary.count,
        "avgMs": d.avg,
        "minMs": d.min,
        "maxMs": d.max,
        "p50Ms": d.p50,
        "p95Ms": d.p95,
        "p99Ms": d.p99,
        "errorRate": whole_percent(summary.error_rate),
        "lastHourCount": summary.last_hour_count,
        "recentRequests": [_request_event(e) for e in summary.recent],  # type: ignore[arg-type]
    }


def _status_counts(counts: StatusCounts) -> dict[str, int]:
    return {
        "status404": counts.status_404,
        "status500": counts.status_500,
        "other4xx": counts.other_4xx,
        "other5xx": counts.other_5xx,
    }


def _execution(execution: JobExecution | None, *keys: str) -> dict[str, Any] | None:
    if execution is None:
        return None
    values = {
        "status": execution.status.value,
        "startedAt": iso_timestamp(execution.started_at),
        "completedAt": iso_timestamp(execution.completed_at),
        "durationMs": execution.duration_ms,
        "error": execution.error,
    }
    return {key: values[key] for key in keys}


def _job(job: JobReport) -> dict[str, Any]:
    definition = job.definition
    s = job.stats
    return {
        "jobName": job.job_name,
        "displayName": definition.display_name if definition else job.job_name,
        "description": definition.description if definition else "",
        "schedule": definition.schedule if definition else None,
        "lastExecution": _execution(
            job.last_execution, "status", "startedAt", "completedAt", "durationMs", "error"
        ),
        "lastSuccess": _execution(job.last_success, "startedAt", "completedAt", "durationMs"),
        "lastFailure": _execution(job.last_failure, "startedAt", "completedAt", "error"),
        "stats": {
            "total": s.total,
            "successful": s.successful,
            "failed": s.failed,
            "running": s.running,
            "recentSuccessful": s.recent_successful,
            "recentFailed": s.recent_failed,
            "avgDurationMs": s.avg_duration_ms,
        },
        "health": job.health.value,
    }


def report_to_dict(report: Report) -> dict[str, Any]:
    """Convert a report into a JSON-serializable dictionary.

    Raises:
        TypeError: If ``report`` is not one of the report types.
    """
    if isinstance(report, RequestMetricsReport):
        return {
            "window": report.window.value,
            "timeSeries": [_request_point(p) for p in report.time_series],
            "topRoutes": [_route_entry(s) for s in report.top_routes],
            "slowestRoutes": [_route_entry(s) for s in report.slowest_routes],
            "totals": _request_totals(report.totals),
            "timestamp": iso_timestamp(report.timestamp),
        }
    if isinstance(report, QueryMetricsReport):
        t = report.totals
        return {
            "window": report.window.value,
            "timeSeries": [_query_point(p) for p in report.time_series],
            "topOperations": [_operation_entry(s) for s in report.top_operations],
            "slowestOperations": [_operation_entry(s) for s in report.slowest_operations],
            "recentSlowQueries": [_query_event(e) for e in report.recent_slow_queries],
            "totals": {
                "queries": t.count,
                "slowQueries": t.slow,
                "errors": t.errors,
                "slowRate": t.slow_rate,
                "errorRate": t.error_rate,
                **_percentiles(t.durations),
            },
            "availableModels": list(report.available_models),
            "timestamp": iso_timestamp(report.timestamp),
        }
    if isinstance(report, PerfReport):
        return {
            "window": report.window.value,
            "timestamp": iso_timestamp(report.timestamp),
            "totalRequests": (
                report.total_recorded
                if report.total_recorded is not None
                else report.totals.count
            ),
            "avgResponseTime": report.totals.durations.avg,
            "errorRate": whole_percent(report.totals.error_rate),
            "timeSeries": [_request_point(p) for p in report.time_series],
            "totals": _request_totals(report.totals),
            "slowestRoutes": [_endpoint_entry(s) for s in report.slowest_routes],
            "mostFrequentRoutes": [_endpoint_entry(s) for s in report.most_frequent_routes],
            "recentSlowRequests": [_request_event(e) for e in report.recent_slow_requests],
            "routeStats": [_endpoint_entry(s) for s in report.route_stats],
            "recentErrors": [_error_event(e) for e in report.recent_errors],
        }
    if isinstance(report, OpsReport):
        totals = report.api_errors.totals
        return {
            "cronJobs": [_job(j) for j in report.jobs],
            "apiErrors": {
                "timeSeries": [
                    {"timestamp": iso_timestamp(key), **_status_counts(counts)}
                    for key, counts in report.api_errors.time_series
                ],
                "totals": {**_status_counts(totals), "total": totals.total},
                "window": report.window.value,
            },
            "overallHealth": report.overall_health.value,
            "timestamp": iso_timestamp(report.timestamp),
        }
    raise TypeError(f"Cannot encode {type(report).__name__}")


def encode_report(report: Report) -> str:
    """Encode a report as a JSON string."""
    return json.dumps(report_to_dict(report))

from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

crm_activities_created_total = Counter(
    "crm_activities_created_total",
    "Activities written to the activity store",
    ["type", "policy"],
)

crm_document_number_collisions_total = Counter(
    "crm_document_number_collisions_total",
    "Document number candidates that were already taken",
    ["prefix"],
)

crm_document_number_fallbacks_total = Counter(
    "crm_document_number_fallbacks_total",
    "Document numbers issued from the timestamp fallback",
    ["prefix"],
)

crm_tasks_overdue_promoted_total = Counter(
    "crm_tasks_overdue_promoted_total",
    "Pending tasks promoted to Overdue",
)


_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _normalize_route_template(path: str) -> str:
    return _PATH_PARAM_RE.sub("{id}", path)


def _sanitize_path(path: str) -> str:
    return _INT_RE.sub("/{id}", path)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _normalize_route_template(path_format)
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _normalize_route_template(route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    status_str = str(status)
    http_requests_total.labels(method=method, path=path, status=status_str).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_activity_created(activity_type: str, policy: str) -> None:
    crm_activities_created_total.labels(type=activity_type, policy=policy).inc()


def observe_document_number_collision(prefix: str) -> None:
    crm_document_number_collisions_total.labels(prefix=prefix).inc()


def observe_document_number_fallback(prefix: str) -> None:
    crm_document_number_fallbacks_total.labels(prefix=prefix).inc()


def observe_overdue_promotions(count: int) -> None:
    if count > 0:
        crm_tasks_overdue_promoted_total.inc(count)


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST

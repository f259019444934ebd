from __future__ import annotations

import time
from typing import Callable

from fastapi import Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, Info, generate_latest

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_ERRORS = Counter(
    "http_request_errors_total",
    "Total HTTP requests resulting in server errors",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)
IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "In-progress HTTP requests",
    ["method", "path"],
)
CREDIT_SPENDS = Counter(
    "credit_spend_total",
    "Credit spend attempts",
    ["kind", "outcome"],
)
CREDIT_GRANTS = Counter(
    "credit_grant_total",
    "Credits granted from completed pack purchases",
    ["kind"],
)
LEDGER_ENTRIES = Counter(
    "support_ledger_entries_total",
    "Support ledger entries appended",
    ["kind", "source"],
)
WEBHOOK_EVENTS = Counter(
    "webhook_events_total",
    "Payment processor webhook events",
    ["type", "outcome"],
)
CHECKOUT_SESSIONS = Counter(
    "checkout_sessions_total",
    "Checkout sessions requested from the payment processor",
    ["mode", "outcome"],
)
UPTIME_SECONDS = Gauge(
    "app_uptime_seconds",
    "Application uptime in seconds",
)
APP_INFO = Info(
    "app",
    "Application metadata",
)

_START_TIME = time.monotonic()


def _route_path(request: Request) -> str:
    route = request.scope.get("route")
    if route and getattr(route, "path", None):
        return route.path
    return request.url.path


def record_spend(kind: str, outcome: str) -> None:
    CREDIT_SPENDS.labels(kind=kind, outcome=outcome).inc()


def record_grant(kind: str, amount: int) -> None:
    CREDIT_GRANTS.labels(kind=kind).inc(amount)


def record_ledger_entry(kind: str, source: str) -> None:
    LEDGER_ENTRIES.labels(kind=kind, source=source).inc()


def record_webhook(event_type: str, outcome: str) -> None:
    WEBHOOK_EVENTS.labels(type=event_type, outcome=outcome).inc()


def record_checkout(mode: str, outcome: str) -> None:
    CHECKOUT_SESSIONS.labels(mode=mode, outcome=outcome).inc()


async def metrics_middleware(request: Request, call_next: Callable[[Request], Response]) -> Response:
    path = _route_path(request)
    method = request.method
    start = time.perf_counter()
    IN_PROGRESS.labels(method=method, path=path).inc()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        IN_PROGRESS.labels(method=method, path=path).dec()
        elapsed = time.perf_counter() - start
        REQUEST_LATENCY.labels(method=method, path=path).observe(elapsed)
        REQUEST_COUNT.labels(method=method, path=path, status=str(status_code)).inc()
        if status_code >= 500:
            REQUEST_ERRORS.labels(method=method, path=path, status=str(status_code)).inc()


def set_app_info(name: str, version: str) -> None:
    APP_INFO.info({"name": name, "version": version})


def metrics_endpoint() -> Response:
    UPTIME_SECONDS.set(time.monotonic() - _START_TIME)
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

"""
Aggregated metrics view for the /api/metrics endpoint.

Built from several scoped ``scan``/``get`` calls rather than one blob read,
then rendered as JSON (inside the response envelope), YAML, or Prometheus
text exposition.
"""

from __future__ import annotations

from typing import Any, Iterator

import yaml
from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric

from services.kv_document import explode, export_value
from services.metrics_service import MetricsStore, parse_counter
from shared import kv_keys

# section name in the view → KV prefix it is read from
SECTIONS = {
    "status": "metrics:status:",
    "errors": "metrics:errors:",
    "resources": "metrics:resources:",
    "visitor": "metrics:visitor:",
    "redirect": "metrics:redirect:",
    "auth": "metrics:auth:",
}


async def _section(store: MetricsStore, prefix: str) -> dict[str, Any]:
    pairs = await store.scan(prefix)
    return explode({key[len(prefix):]: export_value(value) for key, value in pairs})


async def build_metrics_view(store: MetricsStore) -> dict[str, Any]:
    ok = await store.get_int(kv_keys.outcome_key(True))
    error = await store.get_int(kv_keys.outcome_key(False))
    total = ok + error

    last_request = await store.get(kv_keys.last_request_key())
    last_error = await store.get(kv_keys.last_error_key())

    view: dict[str, Any] = {
        "summary": {
            "total": total,
            "ok": ok,
            "error": error,
            "success_rate": round(ok / total, 4) if total else None,
            "last_request": parse_counter(last_request) if last_request else None,
            "last_error": parse_counter(last_error) if last_error else None,
        }
    }
    for name, prefix in SECTIONS.items():
        view[name] = await _section(store, prefix)
    return view


def render_yaml(view: dict[str, Any]) -> str:
    return yaml.safe_dump(view, sort_keys=True, default_flow_style=False)


# ── Prometheus ────────────────────────────────────────────────────────────────


def _counters(section: dict[str, Any]) -> Iterator[tuple[str, str, int]]:
    """Yield ``(name, outcome, value)`` for ``{name: {ok: n, error: m}}`` sections."""
    for name, entry in sorted(section.items()):
        if not isinstance(entry, dict):
            continue
        for outcome in ("ok", "error"):
            value = entry.get(outcome)
            if isinstance(value, int):
                yield name, outcome, value


def _millis_to_seconds(value: Any) -> float | None:
    return value / 1000 if isinstance(value, int) else None


class KVMetricsCollector:
    """prometheus_client collector exposing a pre-built metrics view."""

    def __init__(self, view: dict[str, Any]) -> None:
        self._view = view

    def collect(self) -> Iterator[Metric]:
        summary = self._view["summary"]

        requests = CounterMetricFamily(
            "api_requests", "API requests by outcome", labels=["outcome"]
        )
        requests.add_metric(["ok"], summary["ok"])
        requests.add_metric(["error"], summary["error"])
        yield requests

        statuses = CounterMetricFamily(
            "api_responses", "API responses by status code", labels=["status"]
        )
        for code, value in sorted(self._view["status"].items()):
            if isinstance(value, int):
                statuses.add_metric([code], value)
        yield statuses

        errors = CounterMetricFamily(
            "api_errors", "API errors by error code", labels=["code"]
        )
        for code, value in sorted(self._view["errors"].items()):
            if isinstance(value, int):
                errors.add_metric([code], value)
        yield errors

        resources = CounterMetricFamily(
            "api_resource_requests",
            "API requests by resource and outcome",
            labels=["resource", "outcome"],
        )
        for resource, outcome, value in _counters(self._view["resources"]):
            resources.add_metric([resource, outcome], value)
        yield resources

        visitors = CounterMetricFamily(
            "api_visitors", "API requests by visitor class", labels=["class"]
        )
        for visitor, value in sorted(self._view["visitor"].items()):
            if isinstance(value, int):
                visitors.add_metric([visitor], value)
        yield visitors

        redirects = CounterMetricFamily(
            "redirect_clicks", "Redirect hits by slug and outcome", labels=["slug", "outcome"]
        )
        last_hit = GaugeMetricFamily(
            "redirect_last_hit_timestamp_seconds",
            "Unix time of the last hit per slug",
            labels=["slug"],
        )
        for slug, outcome, value in _counters(self._view["redirect"]):
            redirects.add_metric([slug, outcome], value)
        for slug, entry in sorted(self._view["redirect"].items()):
            seconds = _millis_to_seconds(entry.get("last-hit")) if isinstance(entry, dict) else None
            if seconds is not None:
                last_hit.add_metric([slug], seconds)
        yield redirects
        yield last_hit

        auth_failures = CounterMetricFamily(
            "auth_failures", "Rejected credentials by reason", labels=["reason"]
        )
        failed = self._view["auth"].get("failed", {})
        if isinstance(failed, dict):
            for reason, value in sorted(failed.items()):
                if isinstance(value, int):
                    auth_failures.add_metric([reason], value)
        yield auth_failures


def render_prometheus(view: dict[str, Any]) -> bytes:
    registry = CollectorRegistry(auto_describe=False)
    registry.register(KVMetricsCollector(view))
    return generate_latest(registry)

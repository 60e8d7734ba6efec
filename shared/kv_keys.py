"""
KV key factory.

Every key written to the KV namespace is built here. Metrics keys are made of
lowercase kebab-case segments joined by colons. Redirect slugs and token ids
are stored verbatim, exactly as they were written or imported.

Each key holds exactly one scalar: a decimal-string counter, an
epoch-millisecond timestamp, or a short string (redirect targets). Related
values live under sibling keys sharing a prefix.

Key schema:
    redirect:{slug}                          → destination URL
    auth:revocation:{token_id}               → revocation marker
    auth:token:{token_id}:usage              → counter
    auth:token:{token_id}:last-used          → timestamp
    metrics:ok | metrics:error               → counters
    metrics:status:{code}                    → counter
    metrics:errors:{error_code}              → counter
    metrics:resources:{resource}:ok|error    → counters
    metrics:resources:{resource}:last-hit    → timestamp
    metrics:resources:{resource}:last-error  → timestamp
    metrics:visitor:{bot|human|unknown}      → counter
    metrics:redirect:{slug}:ok|error         → counters
    metrics:redirect:{slug}:last-hit         → timestamp
    metrics:auth:failed:{reason}             → counter
    metrics:last-request | metrics:last-error → timestamps
"""

from __future__ import annotations

import re

SEPARATOR = ":"

REDIRECT_PREFIX = "redirect:"
METRICS_PREFIX = "metrics:"
AUTH_PREFIX = "auth:"

_NON_KEY_CHARS = re.compile(r"[^a-z0-9]+")


def key_segment(value: object) -> str:
    """Normalise *value* into a single kebab-case key segment.

    ``"API_Metrics"`` → ``"api-metrics"``; colons and whitespace can never
    leak into a segment, so one segment never turns into two.
    """
    segment = _NON_KEY_CHARS.sub("-", str(value).lower()).strip("-")
    return segment or "unknown"


def build_key(*parts: object) -> str:
    """Join normalised segments with ``:``."""
    if not parts:
        raise ValueError("build_key requires at least one segment")
    return SEPARATOR.join(key_segment(p) for p in parts)


# ── Redirects ─────────────────────────────────────────────────────────────────


def redirect_key(slug: str) -> str:
    return REDIRECT_PREFIX + slug


def slug_from_redirect_key(key: str) -> str:
    return key[len(REDIRECT_PREFIX):]


# ── Auth ──────────────────────────────────────────────────────────────────────


def revocation_key(token_id: str) -> str:
    return f"{AUTH_PREFIX}revocation:{token_id}"


def token_usage_key(token_id: str) -> str:
    return f"{AUTH_PREFIX}token:{token_id}:usage"


def token_last_used_key(token_id: str) -> str:
    return f"{AUTH_PREFIX}token:{token_id}:last-used"


# ── Metrics ───────────────────────────────────────────────────────────────────


def outcome_key(ok: bool) -> str:
    return build_key("metrics", "ok" if ok else "error")


def status_key(status_code: int) -> str:
    return build_key("metrics", "status", status_code)


def error_code_key(error_code: str) -> str:
    return build_key("metrics", "errors", error_code)


def resource_outcome_key(resource: str, ok: bool) -> str:
    return build_key("metrics", "resources", resource, "ok" if ok else "error")


def resource_last_hit_key(resource: str) -> str:
    return build_key("metrics", "resources", resource, "last-hit")


def resource_last_error_key(resource: str) -> str:
    return build_key("metrics", "resources", resource, "last-error")


def visitor_key(visitor_class: str) -> str:
    return build_key("metrics", "visitor", visitor_class)


def redirect_outcome_key(slug: str, ok: bool) -> str:
    return build_key("metrics", "redirect", slug, "ok" if ok else "error")


def redirect_last_hit_key(slug: str) -> str:
    return build_key("metrics", "redirect", slug, "last-hit")


def auth_failure_key(reason: str) -> str:
    return build_key("metrics", "auth", "failed", reason)


def last_request_key() -> str:
    return build_key("metrics", "last-request")


def last_error_key() -> str:
    return build_key("metrics", "last-error")

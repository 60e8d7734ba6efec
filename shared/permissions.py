"""
Hierarchical scope matching for API tokens.

A scope is a colon-separated path such as ``api:metrics`` or ``ai:alt``
whose first segment is a category (``api``, ``ai``, ``dashboard``, ``admin``).
A token's subject grants a required scope when it is a super-scope (``*`` or
``admin``), equal to it, or an ancestor of it on whole segments: ``api``
grants ``api:metrics`` but ``apiary`` does not, and ``api:metrics`` does not
grant ``api``. Comparison is case-insensitive.

Both functions are total: any input, including non-strings, yields a result
and nothing is raised.
"""

from __future__ import annotations

from enum import Enum

SUPER_SCOPES = frozenset({"*", "admin"})


class ScopeMatch(str, Enum):
    EQUAL = "equal"
    WILDCARD_ADMIN = "wildcard_admin"
    PREFIX_ANCESTOR = "prefix_ancestor"
    NO_MATCH = "no_match"


def _normalise(scope: object) -> str:
    if scope is None:
        return ""
    try:
        return str(scope).strip().lower()
    except Exception:
        return ""


def match_scope(subject: object, required: object) -> ScopeMatch:
    """Classify how *subject* relates to *required*."""
    have = _normalise(subject)
    want = _normalise(required)

    if have in SUPER_SCOPES:
        return ScopeMatch.WILDCARD_ADMIN
    if have == want:
        return ScopeMatch.EQUAL
    if not have:
        return ScopeMatch.NO_MATCH

    have_parts = have.split(":")
    want_parts = want.split(":")
    if len(have_parts) < len(want_parts) and want_parts[: len(have_parts)] == have_parts:
        return ScopeMatch.PREFIX_ANCESTOR

    return ScopeMatch.NO_MATCH


def authorize(subject: object, required: object) -> bool:
    """Return True if a token with *subject* may access *required*."""
    return match_scope(subject, required) is not ScopeMatch.NO_MATCH

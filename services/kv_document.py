"""
KV namespace <-> hierarchical document conversion.

The KV namespace is flat (``metrics:redirect:gh:ok`` → ``"3"``); the export
document is nested and human-editable:

    _anchors:
      zero: &zero {ok: 0, error: 0}
    metrics:
      redirect:
        gh:
          <<: *zero
          ok: 3
    redirect:
      gh: https://github.com/x

Rules:
- ``:``-joined keys explode into nested mappings on export and are flattened
  back on import.
- Decimal-integer values export as native ints and are stored back as
  decimal strings. Everything else exports as a string.
- The top-level ``_anchors`` section only holds YAML anchors for reuse. The
  loader expands aliases and merge keys before flattening, then the section
  is dropped and never written to the KV store.
- A key that is both a value and a prefix of other keys keeps its own value
  under the reserved child ``_value``.
"""

from __future__ import annotations

import json
import re
from datetime import date, datetime
from typing import Any, Iterable, Literal, Optional

import yaml

from errors import ValidationError
from infrastructure.kv.protocol import KVStore
from shared.kv_keys import SEPARATOR
from shared.logging import get_logger

log = get_logger(__name__)

ANCHORS_SECTION = "_anchors"
SELF_VALUE = "_value"

DocumentFormat = Literal["yaml", "json"]

_INTEGER = re.compile(r"-?\d+")


# ── Value coercion ────────────────────────────────────────────────────────────


def export_value(raw: str) -> Any:
    """Stored string → document scalar. Only canonical integers become ints."""
    if _INTEGER.fullmatch(raw) and str(int(raw)) == raw:
        return int(raw)
    return raw


def import_value(value: Any) -> str:
    """Document scalar → stored string."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, list):
        return json.dumps(value, separators=(",", ":"), default=str)
    return str(value)


# ── Structure ─────────────────────────────────────────────────────────────────


def explode(flat: dict[str, Any]) -> dict[str, Any]:
    """Turn ``{"a:b": 1, "a:c": 2}`` into ``{"a": {"b": 1, "c": 2}}``."""
    tree: dict[str, Any] = {}
    for key in sorted(flat):
        parts = key.split(SEPARATOR)
        node = tree
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {} if child is None else {SELF_VALUE: child}
                node[part] = child
            node = child
        leaf = parts[-1]
        existing = node.get(leaf)
        if isinstance(existing, dict):
            existing[SELF_VALUE] = flat[key]
        else:
            node[leaf] = flat[key]
    return tree


def flatten(nested: dict[Any, Any], prefix: str = "") -> dict[str, Any]:
    """Inverse of ``explode``: join nested mapping keys with ``:``."""
    flat: dict[str, Any] = {}
    for raw_key, value in nested.items():
        key = str(raw_key)
        if key == SELF_VALUE:
            if not prefix:
                raise ValidationError(f"'{SELF_VALUE}' is not allowed at the top level")
            flat[prefix] = value
            continue
        if not key:
            raise ValidationError("Empty key segment in document", field=prefix or None)
        full_key = f"{prefix}{SEPARATOR}{key}" if prefix else key
        if isinstance(value, dict):
            if not value:
                continue
            flat.update(flatten(value, full_key))
        else:
            flat[full_key] = value
    return flat


def parse_document(text: str) -> dict[str, str]:
    """Parse a YAML (or JSON) export document into flat KV pairs."""
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValidationError("Document is not valid YAML or JSON") from e

    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ValidationError("Document root must be a mapping")

    document.pop(ANCHORS_SECTION, None)
    return {key: import_value(value) for key, value in flatten(document).items()}


def dump_document(nested: dict[str, Any], fmt: DocumentFormat = "yaml") -> str:
    if fmt == "json":
        return json.dumps(nested, indent=2, sort_keys=True)
    return yaml.safe_dump(
        nested, sort_keys=True, default_flow_style=False, allow_unicode=True
    )


# ── KV operations ─────────────────────────────────────────────────────────────


def key_matches(key: str, patterns: Iterable[re.Pattern[str]]) -> bool:
    return any(pattern.search(key) for pattern in patterns)


def compile_patterns(patterns: Iterable[str]) -> list[re.Pattern[str]]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as e:
            raise ValidationError(f"Invalid key pattern: {pattern}") from e
    return compiled


async def export_namespace(
    kv: KVStore,
    patterns: Optional[Iterable[str]] = None,
    include_all: bool = False,
) -> dict[str, Any]:
    """Read the namespace (or the keys matching *patterns*) as a nested document."""
    keys = await kv.list("")
    if not include_all:
        compiled = compile_patterns(patterns or [])
        keys = [key for key in keys if key_matches(key, compiled)]

    flat: dict[str, Any] = {}
    for key in keys:
        raw = await kv.get(key)
        if raw is None:
            continue
        flat[key] = export_value(raw)

    log.info("kv_exported", keys=len(flat), include_all=include_all)
    return explode(flat)


async def import_document(kv: KVStore, text: str) -> int:
    """Write every non-anchor entry of *text* to the KV store; return the count."""
    flat = parse_document(text)
    for key, value in flat.items():
        await kv.put(key, value)
    log.info("kv_imported", keys=len(flat))
    return len(flat)

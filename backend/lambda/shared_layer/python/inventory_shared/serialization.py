"""inventory_shared.serialization — JSON documents, timestamps, structured logs."""
from __future__ import annotations

import datetime as dt
import json
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

__all__ = [
    "_dump_document",
    "_emit_structured_observability",
    "_load_document",
    "_reject_non_finite",
    "_now_z",
]


def _reject_non_finite(constant: str) -> Any:
    """``parse_constant`` hook: NaN and Infinity are not JSON."""
    raise ValueError(f"Non-finite number {constant} is not allowed")


def _dump_document(value: Any) -> str:
    """Serialize a stored document pretty-printed (2-space indent)."""
    return json.dumps(value, indent=2, ensure_ascii=False, allow_nan=False)


def _load_document(raw: Optional[str]) -> Any:
    """Parse stored document text; ``None`` for an absent document.

    Raises ``ValueError`` on malformed text, including NaN/Infinity.
    """
    if raw is None or raw == "":
        return None
    return json.loads(raw, parse_constant=_reject_non_finite)


def _now_z() -> str:
    """Current UTC timestamp in ISO 8601 format with Z suffix."""
    return dt.datetime.now(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _emit_structured_observability(
    *,
    component: str,
    event: str,
    status_code: Optional[int] = None,
    latency_ms: Optional[int] = None,
    error_code: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    payload: Dict[str, Any] = {
        "timestamp": _now_z(),
        "component": component,
        "event": event,
        "status_code": int(status_code or 0),
        "latency_ms": int(max(0, latency_ms or 0)),
        "error_code": str(error_code or ""),
    }
    if extra:
        payload.update(extra)
    logger.info("[OBSERVABILITY] %s", json.dumps(payload, sort_keys=True, default=str))

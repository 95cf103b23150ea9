"""inventory_shared.http_utils — HTTP response helpers with CORS.

Standard response envelope, error formatting and request accessors used by
the inventory API Lambda functions. Accepts both API Gateway REST (v1) and
HTTP (v2) proxy events.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Dict, Optional, Tuple

from inventory_shared import config
from inventory_shared.errors import InventoryError, ValidationError
from inventory_shared.serialization import _reject_non_finite

NO_CACHE = {"Cache-Control": "no-cache"}


def _cors_headers(extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    headers = {
        "Access-Control-Allow-Origin": config.CORS_ORIGIN,
        "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type,Authorization",
    }
    if extra:
        headers.update(extra)
    return headers


def _response(status_code: int, body: Any, extra_headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Build a standard API Gateway response with CORS headers."""
    return {
        "statusCode": status_code,
        "headers": _cors_headers({"Content-Type": "application/json", **(extra_headers or {})}),
        "body": json.dumps(body, allow_nan=False),
    }


def _options_response() -> Dict[str, Any]:
    """CORS preflight: headers only."""
    return {"statusCode": 200, "headers": _cors_headers(), "body": ""}


def _error(status_code: int, message: str, **extra: Any) -> Dict[str, Any]:
    """Build a standard error response.

    Args:
        status_code: HTTP status code.
        message: Human-readable error message.
        **extra: ``detail`` / ``details`` fields; ``None`` values are dropped.
    """
    payload: Dict[str, Any] = {"error": message}
    payload.update({k: v for k, v in extra.items() if v is not None})
    return _response(status_code, payload)


def _error_from(exc: InventoryError) -> Dict[str, Any]:
    """Map a typed failure onto its error response."""
    details = exc.details if isinstance(exc, ValidationError) else None
    return _error(exc.status_code, exc.message, detail=exc.detail, details=details)


def _parse_body(event: Dict[str, Any]) -> Any:
    """Parse the JSON body (handles base64). An empty body parses as ``{}``.

    Raises:
        ValueError: when the body is not valid JSON.
    """
    raw = event.get("body")
    if raw is None or raw == "":
        return {}
    if event.get("isBase64Encoded"):
        try:
            raw = base64.b64decode(raw).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise ValueError(f"Invalid base64 body: {exc}") from exc
    try:
        return json.loads(raw, parse_constant=_reject_non_finite)
    except (ValueError, TypeError) as exc:
        raise ValueError(f"Invalid JSON body: {exc}") from exc


def _path_method(event: Dict[str, Any]) -> Tuple[str, str]:
    """Extract HTTP method and path from an API Gateway v1 or v2 event."""
    rc = event.get("requestContext") or {}
    http = rc.get("http") or {}
    method = (http.get("method") or event.get("httpMethod") or "GET").upper()
    path = http.get("path") or event.get("rawPath") or event.get("path") or "/"
    return method, path


def _header(event: Dict[str, Any], name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    headers = event.get("headers") or {}
    wanted = name.lower()
    for key, value in headers.items():
        if str(key).lower() == wanted:
            return value
    return None


def _query_params(event: Dict[str, Any]) -> Dict[str, str]:
    return dict(event.get("queryStringParameters") or {})

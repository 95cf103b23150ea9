"""inventory_api/lambda_function.py

Lambda API for the vehicle inventory catalog.
Lists items publicly (drafts hidden) and upserts items for authorized admins.
The whole catalog is one JSON document (``inventory.json``) in the blob store.

Routes (via API Gateway proxy):
    GET     /api/v1/inventory                      — public list (no drafts)
    GET     /api/v1/inventory?includeDrafts=1      — full list with inventory:read
    POST    /api/v1/inventory                      — upsert-merge with inventory:write
    OPTIONS /api/v1/inventory                      — CORS preflight

POST body shapes:
    [ {...}, {...} ]        bare array of items
    { "items": [ ... ] }    wrapped array
    { "item": { ... } }     single item

Auth:
    ``Authorization: Bearer <jwt>`` validated against the Auth0 JWKS (RS256).
    GET only elevates when the token verifies; it never fails on bad auth.

Environment variables:
    AUTH0_DOMAIN       e.g. example.us.auth0.com
    AUTH0_AUDIENCE     API identifier
    INVENTORY_BUCKET   S3 bucket (in-memory store when unset)
    INVENTORY_PREFIX   default: inventory
    CORS_ORIGIN        default: *
"""

from __future__ import annotations

import math
import re
import time
from typing import Any, Dict, List, Optional

from inventory_shared import config
from inventory_shared.auth import TokenVerifier, _authenticate, _get_verifier
from inventory_shared.errors import AuthError, BadRequest, InventoryError, StorageError, StorageWriteError, ValidationError
from inventory_shared.http_utils import (
    NO_CACHE,
    _error,
    _error_from,
    _header,
    _options_response,
    _parse_body,
    _path_method,
    _query_params,
    _response,
)
from inventory_shared.serialization import _dump_document, _emit_structured_observability, _load_document
from inventory_shared.storage import BlobStore, _get_store

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = config.configure_logging()

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_STATUS_CHOICES = " | ".join(config.VALID_STATUSES)

# ---------------------------------------------------------------------------
# Item helpers
# ---------------------------------------------------------------------------


def normalize_id(value: Any) -> str:
    """Lowercase, trim, collapse non-alphanumeric runs to ``-``, strip edge hyphens."""
    return _NON_ALNUM_RE.sub("-", str(value).lower().strip()).strip("-")


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _year_text(year: Any) -> str:
    if _is_blank(year):
        return ""
    # 2020.0 and 2020 must derive the same id
    if isinstance(year, float) and year.is_integer():
        return str(int(year))
    return _text(year)


def _with_normalized_id(item: Any) -> Any:
    """Copy of ``item`` whose ``id`` is normalized or derived from make/model/year.

    Non-object items and non-string ids are left for validation to report.
    """
    if not isinstance(item, dict):
        return item
    out = dict(item)
    raw_id = item.get("id")
    if not _is_blank(raw_id):
        if isinstance(raw_id, str):
            out["id"] = normalize_id(raw_id)
        return out
    year_part = _year_text(item.get("year"))
    out["id"] = normalize_id(f"{_text(item.get('make'))}-{_text(item.get('model'))}-{year_part}")
    return out


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def validate_item(item: Any) -> List[str]:
    """Return every violation for one (already id-normalized) item."""
    if not isinstance(item, dict):
        return ["must be an object"]

    errors: List[str] = []
    item_id = item.get("id")
    if not isinstance(item_id, str) or not item_id:
        errors.append("id is required string")
    if not _non_empty_str(item.get("make")):
        errors.append("make is required")
    if not _non_empty_str(item.get("model")):
        errors.append("model is required")

    year = item.get("year")
    if not _is_blank(year):
        if isinstance(year, bool) or not isinstance(year, (int, float)):
            errors.append("year must be number")
        elif isinstance(year, float) and not math.isfinite(year):
            errors.append("year must be number")

    status = item.get("status")
    if not _is_blank(status) and status not in config.VALID_STATUSES:
        errors.append(f"status must be {_STATUS_CHOICES}")
    return errors


def _extract_items(payload: Any) -> List[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        if isinstance(payload.get("items"), list):
            return payload["items"]
        if payload.get("item"):
            return [payload["item"]]
    raise BadRequest("Body must be array, {items:[]}, or {item:{}}")


def prepare_items(payload: Any) -> List[Dict[str, Any]]:
    """Normalize ids and validate a POST payload.

    Raises:
        BadRequest: unsupported body shape.
        ValidationError: one or more items invalid; ``details`` lists all of them.
    """
    incoming = [_with_normalized_id(item) for item in _extract_items(payload)]
    details = [
        f"item {idx}: {msg}"
        for idx, item in enumerate(incoming)
        for msg in validate_item(item)
    ]
    if details:
        raise ValidationError(details)
    return incoming


def merge_items(existing: List[Any], incoming: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Field-level upsert of ``incoming`` into ``existing`` keyed by id.

    Existing order is kept; new ids are appended in input order. Existing
    records without a string id stay where they are.
    """
    merged: Dict[Any, Any] = {}
    for idx, record in enumerate(existing):
        if not isinstance(record, dict):
            logger.warning("Dropping non-object inventory record at index %d", idx)
            continue
        record_id = record.get("id")
        key = record_id if isinstance(record_id, str) else ("__unkeyed__", idx)
        merged[key] = record
    for item in incoming:
        merged[item["id"]] = {**merged.get(item["id"], {}), **item}
    return list(merged.values())


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _read_inventory(store: BlobStore) -> List[Any]:
    """Stored collection; ``[]`` when absent. Raises StorageError / ValueError."""
    data = _load_document(store.get(config.INVENTORY_KEY))
    return data if isinstance(data, list) else []


def _read_inventory_for_merge(store: BlobStore) -> List[Any]:
    try:
        return _read_inventory(store)
    except (StorageError, ValueError) as exc:
        logger.warning("Existing inventory unreadable, starting empty: %s", exc)
        return []


def upsert_items(store: BlobStore, payload: Any) -> List[Dict[str, Any]]:
    """Validate, merge and persist; returns the full merged collection."""
    incoming = prepare_items(payload)
    merged = merge_items(_read_inventory_for_merge(store), incoming)
    try:
        store.set(config.INVENTORY_KEY, _dump_document(merged), content_type="application/json")
    except StorageWriteError as exc:
        raise StorageWriteError("Failed to write inventory", detail=exc.detail or exc.message) from exc
    logger.info("Upserted %d item(s); inventory now holds %d", len(incoming), len(merged))
    return merged


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _handle_get(event: Dict[str, Any], store: BlobStore, verifier: TokenVerifier) -> Dict[str, Any]:
    include_drafts = False
    if _query_params(event).get("includeDrafts") == "1":
        try:
            verifier.verify(_header(event, "Authorization"), config.SCOPE_READ)
            include_drafts = True
        except AuthError as exc:
            logger.info("includeDrafts denied (%d %s); serving public view", exc.status_code, exc.message)

    try:
        items = _read_inventory(store)
    except StorageError as exc:
        return _error(500, "Failed to read inventory", detail=exc.detail or exc.message)
    except ValueError as exc:
        return _error(500, "Failed to read inventory", detail=str(exc))

    if not include_drafts:
        items = [i for i in items if not (isinstance(i, dict) and i.get("status") == "Draft")]
    return _response(200, items, NO_CACHE)


def _handle_post(event: Dict[str, Any], store: BlobStore, verifier: TokenVerifier) -> Dict[str, Any]:
    _claims, auth_err = _authenticate(event, config.SCOPE_WRITE, verifier)
    if auth_err:
        return auth_err

    try:
        payload = _parse_body(event)
    except ValueError:
        return _error(400, "Invalid JSON")

    try:
        merged = upsert_items(store, payload)
    except InventoryError as exc:
        return _error_from(exc)
    return _response(200, merged, NO_CACHE)


def handle_event(
    event: Dict[str, Any],
    store: Optional[BlobStore] = None,
    verifier: Optional[TokenVerifier] = None,
) -> Dict[str, Any]:
    method, _path = _path_method(event)

    if method == "OPTIONS":
        return _options_response()
    if method not in ("GET", "POST"):
        return _error(405, "Method not allowed")

    if store is None:
        store = _get_store()
    if verifier is None:
        verifier = _get_verifier()

    if method == "GET":
        return _handle_get(event, store, verifier)
    return _handle_post(event, store, verifier)


def lambda_handler(event: Dict, context: Any) -> Dict:
    started = time.time()
    method, path = _path_method(event)
    resp = handle_event(event)
    _emit_structured_observability(
        component="inventory_api",
        event=f"{method} {path}",
        status_code=resp["statusCode"],
        latency_ms=int((time.time() - started) * 1000),
    )
    return resp

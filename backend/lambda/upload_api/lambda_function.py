"""upload_api/lambda_function.py

Records the final URL of an uploaded inventory asset (photo, PDF) so the
admin UI can attach it to items. Mappings live in one JSON object
(``uploads.json``) next to the inventory document.

Routes (via API Gateway proxy):
    POST    /api/v1/uploads   — body {"filename": ..., "url": ...}; inventory:write
    OPTIONS /api/v1/uploads   — CORS preflight

A later POST for the same filename replaces its URL.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

from inventory_shared import config
from inventory_shared.auth import TokenVerifier, _authenticate, _get_verifier
from inventory_shared.errors import StorageError, StorageWriteError
from inventory_shared.http_utils import _error, _options_response, _parse_body, _path_method, _response
from inventory_shared.serialization import _dump_document, _emit_structured_observability, _load_document
from inventory_shared.storage import BlobStore, _get_store

logger = config.configure_logging()


def _read_uploads(store: BlobStore) -> Dict[str, Any]:
    try:
        data = _load_document(store.get(config.UPLOADS_KEY))
    except (StorageError, ValueError) as exc:
        logger.warning("Existing uploads unreadable, starting empty: %s", exc)
        return {}
    return data if isinstance(data, dict) else {}


def record_upload(store: BlobStore, filename: str, url: str) -> Dict[str, Any]:
    uploads = _read_uploads(store)
    uploads[filename] = url
    try:
        store.set(config.UPLOADS_KEY, _dump_document(uploads), content_type="application/json")
    except StorageWriteError as exc:
        raise StorageWriteError("Failed to write uploads", detail=exc.detail or exc.message) from exc
    logger.info("Recorded upload %s (%d total)", filename, len(uploads))
    return {"ok": True, "url": url}


def handle_event(
    event: Dict[str, Any],
    store: Optional[BlobStore] = None,
    verifier: Optional[TokenVerifier] = None,
) -> Dict[str, Any]:
    method, _path = _path_method(event)

    if method == "OPTIONS":
        return _options_response()
    if method != "POST":
        return _error(405, "Method not allowed")

    _claims, auth_err = _authenticate(event, config.SCOPE_WRITE, verifier or _get_verifier())
    if auth_err:
        return auth_err

    try:
        body = _parse_body(event)
    except ValueError:
        return _error(400, "Invalid JSON")
    if not isinstance(body, dict):
        return _error(400, "filename and url required")

    filename = body.get("filename")
    url = body.get("url")
    if not isinstance(filename, str) or not filename or not isinstance(url, str) or not url:
        return _error(400, "filename and url required")

    try:
        result = record_upload(store if store is not None else _get_store(), filename, url)
    except StorageWriteError as exc:
        return _error(exc.status_code, exc.message, detail=exc.detail)
    return _response(200, result)


def lambda_handler(event: Dict, context: Any) -> Dict:
    started = time.time()
    method, path = _path_method(event)
    resp = handle_event(event)
    _emit_structured_observability(
        component="upload_api",
        event=f"{method} {path}",
        status_code=resp["statusCode"],
        latency_ms=int((time.time() - started) * 1000),
    )
    return resp

"""test_layer.py — Unit tests for inventory_shared layer modules.

Run from shared_layer directory:
    python3 -m pytest test_layer.py -v
"""

from __future__ import annotations

import base64
import json
import os
import sys
import time
import unittest
from unittest.mock import MagicMock, patch

import jwt
from botocore.exceptions import ClientError, EndpointConnectionError
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

# Ensure the layer's python/ directory is importable.
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "python"))

from inventory_shared import config
from inventory_shared.auth import (
    JwksKeySet,
    StaticKeySet,
    TokenVerifier,
    _authenticate,
    _extract_bearer,
    _issuer_for,
)
from inventory_shared.aws_clients import _get_s3
from inventory_shared.errors import (
    ConfigurationError,
    Forbidden,
    StorageReadError,
    StorageWriteError,
    Unauthorized,
    ValidationError,
)
from inventory_shared.http_utils import _error, _error_from, _header, _parse_body, _path_method, _response
from inventory_shared.serialization import _dump_document, _load_document, _now_z
from inventory_shared.storage import MemoryBlobStore, S3BlobStore

DOMAIN = "layer-test.eu.auth0.com"
AUDIENCE = "https://inventory.example.com"

_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)


def _token(kid="k1", key=_KEY, **overrides) -> str:
    now = int(time.time())
    claims = {"iss": f"https://{DOMAIN}/", "aud": AUDIENCE, "iat": now, "exp": now + 300, "scope": "inventory:write"}
    claims.update(overrides)
    return jwt.encode(claims, key, algorithm="RS256", headers={"kid": kid})


def _jwks(kid="k1") -> dict:
    jwk = json.loads(RSAAlgorithm.to_jwk(_KEY.public_key()))
    jwk.update({"kid": kid, "use": "sig", "alg": "RS256"})
    return {"keys": [jwk]}


class IssuerTests(unittest.TestCase):
    def test_issuer_variants(self):
        self.assertEqual(_issuer_for("tenant.auth0.com"), "https://tenant.auth0.com/")
        self.assertEqual(_issuer_for("https://tenant.auth0.com/"), "https://tenant.auth0.com/")
        self.assertEqual(_issuer_for("  "), "")

    def test_extract_bearer(self):
        self.assertEqual(_extract_bearer("Bearer abc.def.ghi"), "abc.def.ghi")
        self.assertEqual(_extract_bearer("bearer abc"), "abc")
        for bad in (None, "", "Bearer", "Basic abc", "Bearer a b"):
            with self.assertRaises(Unauthorized):
                _extract_bearer(bad)


class VerifierTests(unittest.TestCase):
    def setUp(self):
        self.verifier = TokenVerifier(DOMAIN, AUDIENCE, key_set=StaticKeySet({"k1": _KEY.public_key()}))

    def test_valid_token_returns_claims(self):
        claims = self.verifier.verify(f"Bearer {_token()}", "inventory:write")
        self.assertEqual(claims["aud"], AUDIENCE)

    def test_scope_checked_as_whitespace_set(self):
        token = _token(scope="openid  inventory:read\tinventory:write")
        self.verifier.verify(f"Bearer {token}", "inventory:read")
        with self.assertRaises(Forbidden):
            self.verifier.verify(f"Bearer {_token(scope='inventory:writer')}", "inventory:write")
        with self.assertRaises(Forbidden):
            self.verifier.verify(f"Bearer {_token(scope=None)}", "inventory:write")

    def test_empty_required_scope_skips_check(self):
        self.verifier.verify(f"Bearer {_token(scope='')}", "")

    def test_not_configured(self):
        for domain, audience in (("", AUDIENCE), (DOMAIN, "")):
            with self.assertRaises(ConfigurationError) as ctx:
                TokenVerifier(domain, audience).verify(f"Bearer {_token()}", "inventory:write")
            self.assertEqual(ctx.exception.status_code, 500)

    def test_rejections_are_unauthorized(self):
        other = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        bad_tokens = [
            _token(aud="https://elsewhere.example.com"),
            _token(iss="https://evil.auth0.com/"),
            _token(exp=int(time.time()) - 60),
            _token(kid="unknown"),
            _token(key=other),
            jwt.encode({"iss": f"https://{DOMAIN}/", "aud": AUDIENCE}, "secret-secret-secret-secret-32b!", algorithm="HS256"),
            "not-a-jwt",
        ]
        for token in bad_tokens:
            with self.assertRaises(Unauthorized):
                self.verifier.verify(f"Bearer {token}", "inventory:write")

    def test_authenticate_returns_error_response(self):
        claims, err = _authenticate({"headers": {}}, "inventory:write", self.verifier)
        self.assertIsNone(claims)
        self.assertEqual(err["statusCode"], 401)

        event = {"headers": {"AUTHORIZATION": f"Bearer {_token(scope='inventory:read')}"}}
        claims, err = _authenticate(event, "inventory:write", self.verifier)
        self.assertIsNone(claims)
        self.assertEqual(err["statusCode"], 403)

        event = {"headers": {"Authorization": f"Bearer {_token()}"}}
        claims, err = _authenticate(event, "inventory:write", self.verifier)
        self.assertIsNone(err)
        self.assertEqual(claims["scope"], "inventory:write")


class JwksKeySetTests(unittest.TestCase):
    def test_keys_cached_until_ttl(self):
        key_set = JwksKeySet("https://example/.well-known/jwks.json")
        with patch.object(key_set, "_fetch", return_value=_jwks()) as fetch:
            self.assertIsNotNone(key_set.get_key("k1"))
            self.assertIsNotNone(key_set.get_key("k1"))
        fetch.assert_called_once()

    def test_unknown_kid_refetches_after_cooldown(self):
        key_set = JwksKeySet("https://example/.well-known/jwks.json", refresh_cooldown=0)
        with patch.object(key_set, "_fetch", side_effect=[_jwks("old"), _jwks("k1")]) as fetch:
            self.assertIsNotNone(key_set.get_key("old"))
            self.assertIsNotNone(key_set.get_key("k1"))
        self.assertEqual(fetch.call_count, 2)

    def test_unknown_kid_within_cooldown_does_not_refetch(self):
        key_set = JwksKeySet("https://example/.well-known/jwks.json", refresh_cooldown=3600)
        with patch.object(key_set, "_fetch", return_value=_jwks()) as fetch:
            key_set.get_key("k1")
            self.assertIsNone(key_set.get_key("rotated"))
        fetch.assert_called_once()

    def test_fetch_failure_surfaces_as_unauthorized(self):
        key_set = JwksKeySet("https://example/.well-known/jwks.json")
        verifier = TokenVerifier(DOMAIN, AUDIENCE, key_set=key_set)
        with patch("inventory_shared.auth.urllib.request.urlopen", side_effect=OSError("connection refused")):
            with self.assertRaises(Unauthorized):
                verifier.verify(f"Bearer {_token()}", "inventory:write")

    def test_malformed_jwks_keys_surface_as_unauthorized(self):
        for body in ({"keys": 5}, {"keys": "k1"}, {"keys": {"kid": "k1"}}, ["k1"]):
            key_set = JwksKeySet("https://example/.well-known/jwks.json")
            verifier = TokenVerifier(DOMAIN, AUDIENCE, key_set=key_set)
            with patch.object(key_set, "_fetch", return_value=body):
                with self.assertRaises(Unauthorized):
                    verifier.verify(f"Bearer {_token()}", "inventory:write")
                event = {"headers": {"Authorization": f"Bearer {_token()}"}}
                claims, err = _authenticate(event, "inventory:write", verifier)
            self.assertIsNone(claims)
            self.assertEqual(err["statusCode"], 401)

    def test_default_key_set_url(self):
        verifier = TokenVerifier(DOMAIN, AUDIENCE)
        self.assertEqual(verifier.key_set.url, f"https://{DOMAIN}/.well-known/jwks.json")

    def test_remote_keys_verify_token(self):
        key_set = JwksKeySet("https://example/.well-known/jwks.json")
        verifier = TokenVerifier(DOMAIN, AUDIENCE, key_set=key_set)
        with patch.object(key_set, "_fetch", return_value=_jwks()):
            claims = verifier.verify(f"Bearer {_token()}", "inventory:write")
        self.assertEqual(claims["iss"], f"https://{DOMAIN}/")


class HttpUtilsTests(unittest.TestCase):
    def test_response_format(self):
        resp = _response(200, [{"id": "a"}], {"Cache-Control": "no-cache"})
        self.assertEqual(resp["statusCode"], 200)
        self.assertEqual(resp["headers"]["Content-Type"], "application/json")
        self.assertEqual(resp["headers"]["Access-Control-Allow-Origin"], config.CORS_ORIGIN)
        self.assertEqual(resp["headers"]["Cache-Control"], "no-cache")
        self.assertEqual(json.loads(resp["body"]), [{"id": "a"}])

    def test_error_format_drops_empty_fields(self):
        resp = _error(400, "bad input", detail=None)
        self.assertEqual(json.loads(resp["body"]), {"error": "bad input"})

    def test_error_from_validation(self):
        resp = _error_from(ValidationError(["item 0: make is required"]))
        self.assertEqual(resp["statusCode"], 400)
        self.assertEqual(
            json.loads(resp["body"]),
            {"error": "Validation failed", "details": ["item 0: make is required"]},
        )

    def test_parse_body(self):
        self.assertEqual(_parse_body({"body": '{"key": "val"}'}), {"key": "val"})
        self.assertEqual(_parse_body({"body": "[1]"}), [1])
        self.assertEqual(_parse_body({}), {})

    def test_parse_body_base64(self):
        raw = base64.b64encode(b'{"key": "b64"}').decode()
        self.assertEqual(_parse_body({"body": raw, "isBase64Encoded": True}), {"key": "b64"})

    def test_parse_body_invalid(self):
        with self.assertRaises(ValueError):
            _parse_body({"body": "{nope"})

    def test_parse_body_rejects_non_finite_numbers(self):
        for raw in ('{"price": NaN}', "[Infinity]", '{"year": -Infinity}'):
            with self.assertRaises(ValueError):
                _parse_body({"body": raw})

    def test_response_never_emits_non_finite_numbers(self):
        with self.assertRaises(ValueError):
            _response(200, [{"price": float("nan")}])

    def test_path_method(self):
        self.assertEqual(
            _path_method({"requestContext": {"http": {"method": "post", "path": "/api/v1/inventory"}}}),
            ("POST", "/api/v1/inventory"),
        )
        self.assertEqual(_path_method({"httpMethod": "GET", "path": "/inv"}), ("GET", "/inv"))

    def test_header_case_insensitive(self):
        event = {"headers": {"authorization": "Bearer x"}}
        self.assertEqual(_header(event, "Authorization"), "Bearer x")
        self.assertIsNone(_header({"headers": None}, "Authorization"))


class SerializationTests(unittest.TestCase):
    def test_dump_document_pretty(self):
        self.assertEqual(_dump_document([{"id": "a"}]), '[\n  {\n    "id": "a"\n  }\n]')

    def test_load_document(self):
        self.assertIsNone(_load_document(None))
        self.assertIsNone(_load_document(""))
        self.assertEqual(_load_document("[]"), [])
        with self.assertRaises(ValueError):
            _load_document("[")
        with self.assertRaises(ValueError):
            _load_document('[{"price": NaN}]')

    def test_dump_document_rejects_non_finite_numbers(self):
        with self.assertRaises(ValueError):
            _dump_document([{"price": float("inf")}])

    def test_now_z_format(self):
        self.assertRegex(_now_z(), r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$")


class StorageTests(unittest.TestCase):
    def _client_error(self, code):
        return ClientError({"Error": {"Code": code, "Message": code}}, "GetObject")

    def test_s3_get(self):
        client = MagicMock()
        client.get_object.return_value = {"Body": MagicMock(read=MagicMock(return_value=b"[]"))}
        store = S3BlobStore("bucket", "inventory/", client=client)
        self.assertEqual(store.get("inventory.json"), "[]")
        client.get_object.assert_called_once_with(Bucket="bucket", Key="inventory/inventory.json")

    def test_s3_get_missing(self):
        client = MagicMock()
        client.get_object.side_effect = self._client_error("NoSuchKey")
        self.assertIsNone(S3BlobStore("bucket", client=client).get("inventory.json"))

    def test_s3_get_fault(self):
        client = MagicMock()
        client.get_object.side_effect = self._client_error("AccessDenied")
        with self.assertRaises(StorageReadError) as ctx:
            S3BlobStore("bucket", client=client).get("inventory.json")
        self.assertIn("AccessDenied", ctx.exception.detail)

        client.get_object.side_effect = EndpointConnectionError(endpoint_url="https://s3")
        with self.assertRaises(StorageReadError):
            S3BlobStore("bucket", client=client).get("inventory.json")

    def test_s3_set(self):
        client = MagicMock()
        S3BlobStore("bucket", "inventory", client=client).set("uploads.json", "{}")
        client.put_object.assert_called_once_with(
            Bucket="bucket",
            Key="inventory/uploads.json",
            Body=b"{}",
            ContentType="application/json",
        )

    def test_s3_set_fault(self):
        client = MagicMock()
        client.put_object.side_effect = self._client_error("SlowDown")
        with self.assertRaises(StorageWriteError) as ctx:
            S3BlobStore("bucket", client=client).set("inventory.json", "[]")
        self.assertEqual(ctx.exception.status_code, 500)

    def test_memory_store(self):
        store = MemoryBlobStore()
        self.assertIsNone(store.get("inventory.json"))
        store.set("inventory.json", "[]")
        self.assertEqual(store.get("inventory.json"), "[]")

    def test_default_store_selection(self):
        import inventory_shared.storage as storage

        orig_bucket = config.INVENTORY_BUCKET
        try:
            storage._store = None
            config.INVENTORY_BUCKET = ""
            self.assertIsInstance(storage._get_store(), MemoryBlobStore)

            storage._store = None
            config.INVENTORY_BUCKET = "catalog-bucket"
            store = storage._get_store()
            self.assertIsInstance(store, S3BlobStore)
            self.assertEqual(store.bucket, "catalog-bucket")
            self.assertIs(storage._get_store(), store)
        finally:
            config.INVENTORY_BUCKET = orig_bucket
            storage._store = None


class AwsClientTests(unittest.TestCase):
    @patch("inventory_shared.aws_clients.boto3")
    def test_get_s3_singleton(self, mock_boto3):
        import inventory_shared.aws_clients as clients

        clients._s3 = None  # Reset singleton
        mock_boto3.client.return_value = MagicMock()

        result1 = _get_s3()
        result2 = _get_s3()

        self.assertIs(result1, result2)
        mock_boto3.client.assert_called_once()
        self.assertEqual(mock_boto3.client.call_args[0][0], "s3")

        clients._s3 = None  # Clean up


if __name__ == "__main__":
    unittest.main()

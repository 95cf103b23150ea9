"""inventory_shared.auth — Bearer JWT verification and scope checks.

Reads ``Authorization: Bearer <token>``, validates the RS256 JWT against the
issuer's JWKS endpoint (``https://<AUTH0_DOMAIN>/.well-known/jwks.json``),
checks issuer and audience, then checks the space-delimited ``scope`` claim.

Requires environment variables:
    AUTH0_DOMAIN     — e.g. example.us.auth0.com
    AUTH0_AUDIENCE   — API identifier, e.g. https://inventory.example.com

Without them every authenticated operation fails with ConfigurationError.
"""

from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.request
from typing import Any, Dict, Optional, Tuple

import jwt
from jwt.algorithms import RSAAlgorithm

from inventory_shared import config
from inventory_shared.errors import AuthError, ConfigurationError, Forbidden, Unauthorized
from inventory_shared.http_utils import _error_from, _header

logger = logging.getLogger(__name__)

__all__ = [
    "JwksKeySet",
    "StaticKeySet",
    "TokenVerifier",
    "_authenticate",
    "_extract_bearer",
    "_get_verifier",
    "_issuer_for",
]

_JWKS_TTL = 3600.0
_JWKS_REFRESH_COOLDOWN = 30.0


def _issuer_for(domain: str) -> str:
    """``example.auth0.com`` (with or without scheme/slash) -> ``https://example.auth0.com/``."""
    host = domain.strip()
    for scheme in ("https://", "http://"):
        if host.lower().startswith(scheme):
            host = host[len(scheme):]
    host = host.rstrip("/")
    return f"https://{host}/" if host else ""


def _extract_bearer(auth_header: Optional[str]) -> str:
    if not auth_header:
        raise Unauthorized()
    parts = str(auth_header).split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise Unauthorized()
    return parts[1]


# ---------------------------------------------------------------------------
# Key sets
# ---------------------------------------------------------------------------


class StaticKeySet:
    """Fixed ``kid -> public key`` mapping."""

    def __init__(self, keys: Dict[str, Any]) -> None:
        self._keys = dict(keys)

    def get_key(self, kid: Optional[str]) -> Any:
        return self._keys.get(kid)


class JwksKeySet:
    """Remote JWKS, cached by ``kid``.

    Keys are refetched after ``ttl`` seconds, or early when a token names an
    unknown ``kid`` (at most once per ``refresh_cooldown`` seconds).
    Fetch failures raise ValueError.
    """

    def __init__(
        self,
        url: str,
        ttl: float = _JWKS_TTL,
        refresh_cooldown: float = _JWKS_REFRESH_COOLDOWN,
        timeout: float = 5.0,
    ) -> None:
        self.url = url
        self.ttl = ttl
        self.refresh_cooldown = refresh_cooldown
        self.timeout = timeout
        self._cache: Dict[str, Any] = {}
        self._fetched_at = 0.0

    def _fetch(self) -> Dict[str, Any]:
        try:
            with urllib.request.urlopen(self.url, timeout=self.timeout) as resp:
                return json.loads(resp.read())
        except (urllib.error.URLError, OSError) as exc:
            raise ValueError(f"JWKS fetch failed: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ValueError(f"JWKS response is not JSON: {exc}") from exc

    def refresh(self) -> None:
        data = self._fetch()
        if not isinstance(data, dict):
            raise ValueError("JWKS response is not an object")
        keys = data.get("keys") or []
        if not isinstance(keys, list):
            raise ValueError("JWKS keys is not a list")
        new_cache: Dict[str, Any] = {}
        for key_data in keys:
            kid = key_data.get("kid") if isinstance(key_data, dict) else None
            if not kid or key_data.get("kty") != "RSA":
                continue
            try:
                new_cache[kid] = RSAAlgorithm.from_jwk(json.dumps(key_data))
            except jwt.PyJWTError as exc:
                logger.warning("Skipping unusable JWK %s: %s", kid, exc)
        self._cache = new_cache
        self._fetched_at = time.time()
        logger.info("Fetched %d signing keys from %s", len(new_cache), self.url)

    def get_key(self, kid: Optional[str]) -> Any:
        now = time.time()
        if not self._cache or (now - self._fetched_at) >= self.ttl:
            self.refresh()
        elif kid not in self._cache and (now - self._fetched_at) >= self.refresh_cooldown:
            self.refresh()
        return self._cache.get(kid)


# ---------------------------------------------------------------------------
# Verifier
# ---------------------------------------------------------------------------


class TokenVerifier:
    def __init__(self, domain: str, audience: str, key_set: Any = None) -> None:
        self.issuer = _issuer_for(domain or "")
        self.audience = (audience or "").strip()
        if key_set is None and self.issuer:
            key_set = JwksKeySet(f"{self.issuer}.well-known/jwks.json")
        self.key_set = key_set

    def _decode(self, token: str) -> Dict[str, Any]:
        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as exc:
            raise ValueError(f"Invalid token header: {exc}") from exc

        alg = header.get("alg", "RS256")
        if alg != "RS256":
            raise ValueError(f"Unexpected token algorithm: {alg}")

        key = self.key_set.get_key(header.get("kid"))
        if key is None:
            raise ValueError("Token key ID not found in JWKS")

        try:
            return jwt.decode(
                token,
                key,
                algorithms=["RS256"],
                audience=self.audience,
                issuer=self.issuer,
            )
        except jwt.ExpiredSignatureError:
            raise ValueError("Token has expired.")
        except jwt.InvalidAudienceError:
            raise ValueError("Token audience mismatch.")
        except jwt.InvalidIssuerError:
            raise ValueError("Token issuer mismatch.")
        except jwt.PyJWTError as exc:
            raise ValueError(f"Token validation failed: {exc}") from exc

    def verify(self, auth_header: Optional[str], required_scope: str = "") -> Dict[str, Any]:
        """Return verified claims or raise ConfigurationError/Unauthorized/Forbidden."""
        if not self.issuer or not self.audience or self.key_set is None:
            raise ConfigurationError()

        token = _extract_bearer(auth_header)
        try:
            claims = self._decode(token)
        except ValueError as exc:
            logger.info("Bearer token rejected: %s", exc)
            raise Unauthorized() from exc

        if required_scope:
            scopes = set(str(claims.get("scope") or "").split())
            if required_scope not in scopes:
                raise Forbidden()
        return claims


_verifier: Optional[TokenVerifier] = None


def _get_verifier() -> TokenVerifier:
    """Get (or create) the verifier for the configured issuer/audience."""
    global _verifier
    if _verifier is None:
        _verifier = TokenVerifier(config.AUTH0_DOMAIN, config.AUTH0_AUDIENCE)
    return _verifier


def _authenticate(
    event: Dict[str, Any],
    required_scope: str,
    verifier: Optional[TokenVerifier] = None,
) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
    """Authenticate a request's bearer token.

    Returns (claims, None) on success or (None, error_response) on failure.
    """
    verifier = verifier or _get_verifier()
    try:
        return verifier.verify(_header(event, "Authorization"), required_scope), None
    except AuthError as exc:
        return None, _error_from(exc)

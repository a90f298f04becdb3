"""Okta credentials and access-token negotiation.

Two modes are supported:
  - OAuth 2.0 client credentials with a private key JWT (recommended).
    One round trip to /oauth2/v1/token at construction time.
  - A static SSWS API token (legacy). No network call.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

import jwt
import requests
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from scripts.posture.errors import AuthenticationError, ConfigurationError

logger = logging.getLogger("posture.auth")

SCHEME_BEARER = "Bearer"
SCHEME_SSWS = "SSWS"

TOKEN_PATH = "/oauth2/v1/token"
SCOPES = ["okta.users.read", "okta.apps.read", "okta.policies.read"]
CLIENT_ASSERTION_TYPE = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"
ASSERTION_LIFETIME_S = 5 * 60
TOKEN_EXCHANGE_TIMEOUT_S = 30.0


def build_base_url(org_domain: str) -> str:
    """Normalize an org domain ("https://acme.okta.com/") to a base URL."""
    domain = org_domain.strip()
    for prefix in ("https://", "http://"):
        if domain.startswith(prefix):
            domain = domain[len(prefix):]
    return f"https://{domain.rstrip('/')}"


@dataclass(frozen=True)
class Credentials:
    """Exactly one of (client_id + private_key) or api_token."""

    org_domain: str
    client_id: Optional[str] = None
    private_key: Optional[bytes] = field(default=None, repr=False)
    api_token: Optional[str] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.org_domain:
            raise ConfigurationError("org_domain is required")
        key_mode = self.uses_private_key
        token_mode = bool(self.api_token)
        if key_mode and token_mode:
            raise ConfigurationError("credentials must use a private key or an API token, not both")
        if not key_mode and not token_mode:
            raise ConfigurationError(
                "authentication required: provide client_id + private key or an API token"
            )

    @property
    def uses_private_key(self) -> bool:
        return bool(self.client_id and self.private_key)


@dataclass(frozen=True)
class AuthSession:
    scheme: str
    token: str = field(repr=False)

    @property
    def header_value(self) -> str:
        return f"{self.scheme} {self.token}"


def parse_private_key(key_data: bytes) -> rsa.RSAPrivateKey:
    """Load a PEM-encoded RSA private key.

    Both the PKCS#8 ("PRIVATE KEY") and PKCS#1 ("RSA PRIVATE KEY")
    containers are accepted; any other key type is rejected.
    """
    if b"-----BEGIN" not in key_data:
        raise AuthenticationError("failed to decode PEM block")
    try:
        key = serialization.load_pem_private_key(key_data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise AuthenticationError(f"failed to parse private key: {exc}") from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise AuthenticationError("key is not an RSA private key")
    return key


def build_client_assertion(
    client_id: str,
    base_url: str,
    key: rsa.RSAPrivateKey,
    now: Optional[int] = None,
) -> str:
    """Sign a short-lived RS256 client assertion for the token endpoint."""
    issued_at = int(now if now is not None else time.time())
    claims = {
        "aud": f"{base_url}{TOKEN_PATH}",
        "iss": client_id,
        "sub": client_id,
        "iat": issued_at,
        "exp": issued_at + ASSERTION_LIFETIME_S,
    }
    try:
        return jwt.encode(claims, key, algorithm="RS256")
    except (jwt.PyJWTError, ValueError, TypeError) as exc:
        raise AuthenticationError(f"failed to sign client assertion: {exc}") from exc


def exchange_assertion(
    base_url: str,
    assertion: str,
    http: Optional[requests.Session] = None,
    timeout: float = TOKEN_EXCHANGE_TIMEOUT_S,
) -> str:
    """Exchange a client assertion for an access token."""
    data = {
        "grant_type": "client_credentials",
        "scope": " ".join(SCOPES),
        "client_assertion_type": CLIENT_ASSERTION_TYPE,
        "client_assertion": assertion,
    }
    poster = http.post if http is not None else requests.post
    try:
        resp = poster(
            f"{base_url}{TOKEN_PATH}",
            data=data,
            headers={"Accept": "application/json"},
            timeout=timeout,
        )
    except requests.RequestException as exc:
        raise AuthenticationError(f"token exchange request failed: {exc}") from exc

    if resp.status_code != 200:
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if isinstance(body, dict) and body.get("error"):
            raise AuthenticationError(
                f"token exchange failed: {body['error']} - {body.get('error_description', '')}"
            )
        raise AuthenticationError(f"token exchange failed with status {resp.status_code}")

    try:
        result = resp.json()
    except ValueError as exc:
        raise AuthenticationError("token exchange returned invalid JSON") from exc

    access_token = result.get("access_token") if isinstance(result, dict) else None
    if not access_token:
        raise AuthenticationError("token exchange returned empty access token")
    return access_token


class TokenProvider:
    """Holds the session for one collection run and hands out the auth header."""

    def __init__(self, base_url: str, session: AuthSession) -> None:
        self.base_url = base_url
        self._session = session

    @property
    def scheme(self) -> str:
        return self._session.scheme

    def authorization_header(self) -> str:
        return self._session.header_value

    @classmethod
    def from_static_token(cls, org_domain: str, api_token: str) -> "TokenProvider":
        return cls(build_base_url(org_domain), AuthSession(SCHEME_SSWS, api_token))

    @classmethod
    def from_private_key(
        cls,
        org_domain: str,
        client_id: str,
        private_key: bytes,
        http: Optional[requests.Session] = None,
    ) -> "TokenProvider":
        base_url = build_base_url(org_domain)
        key = parse_private_key(private_key)
        assertion = build_client_assertion(client_id, base_url, key)
        access_token = exchange_assertion(base_url, assertion, http=http)
        logger.info("Obtained OAuth access token", extra={"org_domain": org_domain})
        return cls(base_url, AuthSession(SCHEME_BEARER, access_token))

    @classmethod
    def from_credentials(
        cls,
        credentials: Credentials,
        http: Optional[requests.Session] = None,
    ) -> "TokenProvider":
        if credentials.uses_private_key:
            return cls.from_private_key(
                credentials.org_domain,
                credentials.client_id or "",
                credentials.private_key or b"",
                http=http,
            )
        return cls.from_static_token(credentials.org_domain, credentials.api_token or "")

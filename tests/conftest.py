"""Shared fixtures: RSA keys and an HTTP client over a scripted session."""

from __future__ import annotations

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from scripts.posture.auth import TokenProvider
from scripts.posture.config import HttpConfig
from scripts.posture.providers.okta_http import OktaHttpClient
from tests.helpers import FIXED_CLOCK, FakeSession, RecordingToken

FAST_HTTP = HttpConfig(
    timeout_s=5.0,
    page_limit=2,
    max_rate_limit_retries=3,
    max_rate_limit_wait_s=60.0,
    default_backoff_s=1.0,
)


@pytest.fixture
def recording_token() -> RecordingToken:
    return RecordingToken()


@pytest.fixture
def make_client(recording_token):
    """Build an OktaHttpClient (SSWS auth) over a FakeSession."""

    def _make(*responses, token=None, http_config=FAST_HTTP):
        session = FakeSession(*responses)
        client = OktaHttpClient(
            TokenProvider.from_static_token("https://acme.okta.com/", "ssws-token"),
            http_config,
            token=token or recording_token,
            session=session,
            clock=lambda: FIXED_CLOCK,
        )
        return client, session

    return _make


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def pkcs8_pem(rsa_key) -> bytes:
    return rsa_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


@pytest.fixture(scope="session")
def pkcs1_pem(rsa_key) -> bytes:
    return rsa_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    )


@pytest.fixture(scope="session")
def ec_pem() -> bytes:
    key = ec.generate_private_key(ec.SECP256R1())
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


ENV_KEYS = (
    "OKTA_ORG_DOMAIN",
    "OKTA_CLIENT_ID",
    "OKTA_PRIVATE_KEY",
    "OKTA_API_TOKEN",
    "OKTA_HTTP_TIMEOUT",
    "OKTA_PAGE_LIMIT",
    "OKTA_MAX_RATE_LIMIT_RETRIES",
    "OKTA_MAX_RATE_LIMIT_WAIT",
    "POSTURE_INACTIVE_DAYS",
    "POSTURE_INTERVAL_MIN",
    "POSTURE_OUTPUT",
    "POSTURE_RUN_TIMEOUT",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Strip collector variables and run from an empty directory."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    # keep load_dotenv() from picking up a developer's .env
    monkeypatch.chdir(tmp_path)
    return monkeypatch

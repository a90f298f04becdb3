"""Configuration via environment variables or a host-supplied mapping.

Supports:
  - Environment variables and .env files (local runs, scheduler, CLI)
  - A settings mapping plus named secrets (host runner)
  - Secret references for the private key / API token
    (aws-secret://, gcp-secret://, file://)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional

from dotenv import load_dotenv

from scripts.posture.errors import ConfigurationError
from scripts.posture.secrets import resolve_secret

logger = logging.getLogger("posture.config")

PRIVATE_KEY_SECRET = "OKTA_PRIVATE_KEY"
API_TOKEN_SECRET = "OKTA_API_TOKEN"


@dataclass(frozen=True)
class OktaConfig:
    org_domain: str
    client_id: Optional[str] = None
    private_key: Optional[str] = field(default=None, repr=False)  # PEM text
    api_token: Optional[str] = field(default=None, repr=False)  # SSWS, legacy

    @property
    def uses_oauth(self) -> bool:
        return bool(self.client_id and self.private_key)


@dataclass(frozen=True)
class HttpConfig:
    timeout_s: float = 30.0
    page_limit: int = 200
    max_rate_limit_retries: int = 3
    max_rate_limit_wait_s: float = 60.0
    default_backoff_s: float = 1.0


@dataclass(frozen=True)
class SchedulerConfig:
    interval_min: int = 1440
    misfire_grace_time: int = 300
    max_retries: int = 3


@dataclass(frozen=True)
class CollectorConfig:
    okta: OktaConfig
    http: HttpConfig = field(default_factory=HttpConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    inactive_days: int = 90
    output_path: Optional[str] = None
    run_timeout_s: Optional[float] = None


def validate_okta_config(okta: OktaConfig) -> None:
    """Raise ConfigurationError unless the org domain and one auth mode are set."""
    if not okta.org_domain:
        raise ConfigurationError("org_domain is required")
    if not okta.uses_oauth and not okta.api_token:
        raise ConfigurationError(
            "authentication required: provide client_id + "
            f"{PRIVATE_KEY_SECRET} (recommended) or {API_TOKEN_SECRET}"
        )
    if okta.uses_oauth and okta.api_token:
        logger.warning(
            "Both private key and API token supplied, using OAuth",
            extra={"org_domain": okta.org_domain},
        )


def config_from_mapping(
    settings: Optional[Mapping[str, object]],
    secret: Callable[[str], Optional[str]],
) -> CollectorConfig:
    """Build a config from a host settings mapping and a secret lookup by name.

    Non-string settings values are treated as missing.
    """
    settings = settings or {}

    def _get(key: str) -> str:
        value = settings.get(key)
        return value if isinstance(value, str) else ""

    okta = OktaConfig(
        org_domain=_get("org_domain"),
        client_id=_get("client_id") or None,
        private_key=secret(PRIVATE_KEY_SECRET) or None,
        api_token=secret(API_TOKEN_SECRET) or None,
    )
    validate_okta_config(okta)
    return CollectorConfig(okta=okta)


def load_config() -> CollectorConfig:
    """Load configuration from environment variables.

    OKTA_PRIVATE_KEY and OKTA_API_TOKEN may hold secret references that are
    resolved through AWS Secrets Manager, GCP Secret Manager or a local file.
    """
    load_dotenv()

    private_key_raw = os.environ.get(PRIVATE_KEY_SECRET, "")
    api_token_raw = os.environ.get(API_TOKEN_SECRET, "")

    okta = OktaConfig(
        org_domain=os.environ.get("OKTA_ORG_DOMAIN", ""),
        client_id=os.environ.get("OKTA_CLIENT_ID") or None,
        private_key=resolve_secret(private_key_raw) if private_key_raw else None,
        api_token=resolve_secret(api_token_raw) if api_token_raw else None,
    )
    validate_okta_config(okta)

    try:
        http = HttpConfig(
            timeout_s=float(os.environ.get("OKTA_HTTP_TIMEOUT", "30")),
            page_limit=int(os.environ.get("OKTA_PAGE_LIMIT", "200")),
            max_rate_limit_retries=int(os.environ.get("OKTA_MAX_RATE_LIMIT_RETRIES", "3")),
            max_rate_limit_wait_s=float(os.environ.get("OKTA_MAX_RATE_LIMIT_WAIT", "60")),
        )
        scheduler = SchedulerConfig(
            interval_min=int(os.environ.get("POSTURE_INTERVAL_MIN", "1440")),
        )
        inactive_days = int(os.environ.get("POSTURE_INACTIVE_DAYS", "90"))
        run_timeout = os.environ.get("POSTURE_RUN_TIMEOUT")
        run_timeout_s = float(run_timeout) if run_timeout else None
    except ValueError as exc:
        raise ConfigurationError(f"invalid numeric setting: {exc}") from exc

    return CollectorConfig(
        okta=okta,
        http=http,
        scheduler=scheduler,
        inactive_days=inactive_days,
        output_path=os.environ.get("POSTURE_OUTPUT") or None,
        run_timeout_s=run_timeout_s,
    )

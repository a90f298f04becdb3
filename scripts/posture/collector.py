"""Collection run: build the client, aggregate, assemble the posture record."""

from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Optional

import requests

from scripts.posture.aggregators import (
    collect_app_metrics,
    collect_policy_metrics,
    collect_user_metrics,
)
from scripts.posture.auth import Credentials, TokenProvider
from scripts.posture.base_client import OktaClient
from scripts.posture.cancellation import CancellationToken
from scripts.posture.config import CollectorConfig
from scripts.posture.errors import ConfigurationError
from scripts.posture.posture import OrgPosture, Posture, assemble
from scripts.posture.providers.okta_http import OktaHttpClient

logger = logging.getLogger("posture.collector")


def credentials_from_config(config: CollectorConfig) -> Credentials:
    """Pick exactly one auth mode; the private key wins when both are set."""
    okta = config.okta
    if okta.uses_oauth:
        return Credentials(
            org_domain=okta.org_domain,
            client_id=okta.client_id,
            private_key=(okta.private_key or "").encode("utf-8"),
        )
    return Credentials(org_domain=okta.org_domain, api_token=okta.api_token)


def build_client(
    config: CollectorConfig,
    token: Optional[CancellationToken] = None,
    session: Optional[requests.Session] = None,
) -> OktaHttpClient:
    """Create the network client. OAuth performs the token exchange here."""
    credentials = credentials_from_config(config)
    provider = TokenProvider.from_credentials(credentials, http=session)
    logger.info(
        "Okta client configured, auth scheme=%s",
        provider.scheme,
        extra={"org_domain": config.okta.org_domain},
    )
    return OktaHttpClient(provider, config.http, token=token, session=session)


class PostureCollector:
    """Runs the user, application and policy aggregations sequentially."""

    def __init__(self, config: CollectorConfig, client: OktaClient) -> None:
        self.config = config
        self.client = client
        self.org_domain = config.okta.org_domain

    def collect(
        self,
        token: Optional[CancellationToken] = None,
        now: Optional[datetime] = None,
    ) -> OrgPosture:
        if not self.org_domain:
            raise ConfigurationError("org_domain is required")

        run_id = str(uuid.uuid4())
        started = time.monotonic()
        run_start = now or datetime.now(timezone.utc)
        logger.info("Collection started", extra={"org_domain": self.org_domain, "run_id": run_id})

        try:
            users = collect_user_metrics(
                self.client, run_start, self.config.inactive_days, token=token
            )
            apps = collect_app_metrics(self.client, token=token)
            policies = collect_policy_metrics(self.client, token=token)
        except Exception as exc:
            logger.error(
                "Collection failed: %s",
                exc,
                extra={"org_domain": self.org_domain, "run_id": run_id},
            )
            raise

        result = assemble(
            self.org_domain,
            Posture(
                mfa_coverage=users.mfa_coverage,
                mfa_phishing_resistant=users.mfa_phishing_resistant,
                sso_coverage=apps.sso_coverage,
            ),
            users.finalize(),
            apps.finalize(),
            policies.finalize(),
            collected_at=now,
        )
        logger.info(
            "Collection complete",
            extra={
                "org_domain": self.org_domain,
                "run_id": run_id,
                "records": users.total + apps.total,
                "duration_s": round(time.monotonic() - started, 3),
            },
        )
        return result

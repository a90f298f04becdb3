"""AWS Lambda handler for posture collection.

Deployed as a Lambda function triggered by an EventBridge schedule. The
OKTA_PRIVATE_KEY / OKTA_API_TOKEN variables usually hold aws-secret://
references resolved at cold start.

Event format:
  {}                                  -> collect with environment config
  {"org_domain": "acme.okta.com"}     -> override the org domain
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import sys

# Ensure the project root is on sys.path for Lambda packaging
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", ".."))

from scripts.posture.cancellation import CancellationToken
from scripts.posture.config import load_config
from scripts.posture.errors import CollectorRunError, PostureError
from scripts.posture.logging_config import configure_logging
from scripts.posture.runner import run_config

logger = logging.getLogger("posture.lambda")

# Leave room to log and return before Lambda kills the invocation
_DEADLINE_MARGIN_S = 5.0


def _token_for(context) -> CancellationToken:
    remaining_ms = getattr(context, "get_remaining_time_in_millis", None)
    if remaining_ms is None:
        return CancellationToken()
    return CancellationToken(max(remaining_ms() / 1000.0 - _DEADLINE_MARGIN_S, 0.0))


def handler(event: dict, context) -> dict:
    """Lambda entry point."""
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

    try:
        config = load_config()
    except PostureError as exc:
        logger.error("Configuration error: %s", exc)
        return {"statusCode": 400, "body": json.dumps({"category": "config", "error": str(exc)})}

    org_domain = (event or {}).get("org_domain")
    if org_domain:
        config = dataclasses.replace(
            config, okta=dataclasses.replace(config.okta, org_domain=org_domain)
        )

    logger.info("Lambda invoked", extra={"org_domain": config.okta.org_domain})

    records: list[dict] = []
    try:
        run_config(config, records.append, token=_token_for(context))
    except CollectorRunError as exc:
        logger.error("Collection failed (%s): %s", exc.category, exc.message, exc_info=True)
        status = 400 if exc.category == "config" else 500
        return {
            "statusCode": status,
            "body": json.dumps({"category": exc.category, "error": exc.message}),
        }

    return {"statusCode": 200, "body": json.dumps(records[0])}

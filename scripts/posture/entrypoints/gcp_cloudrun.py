"""GCP Cloud Run Job entry point for posture collection.

Deployed as a Cloud Run Job triggered by Cloud Scheduler. The record is
written to stdout (Cloud Logging picks it up) or to POSTURE_OUTPUT.

Usage:
  OKTA_ORG_DOMAIN=acme.okta.com OKTA_API_TOKEN=gcp-secret://okta-token \
    python -m scripts.posture.entrypoints.gcp_cloudrun
"""

from __future__ import annotations

import logging
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", ".."))

from scripts.posture.cancellation import CancellationToken
from scripts.posture.cli import make_emitter
from scripts.posture.config import load_config
from scripts.posture.errors import CollectorRunError, PostureError
from scripts.posture.logging_config import configure_logging
from scripts.posture.runner import run_config

logger = logging.getLogger("posture.cloudrun")


def main() -> None:
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

    try:
        config = load_config()
    except PostureError as exc:
        logger.error("Configuration error: %s", exc)
        sys.exit(1)

    # POSTURE_RUN_TIMEOUT, when set, bounds the whole run
    token = CancellationToken(config.run_timeout_s)

    logger.info("Cloud Run Job started", extra={"org_domain": config.okta.org_domain})
    try:
        run_config(config, make_emitter(config.output_path), token=token)
    except CollectorRunError as exc:
        logger.error("Collection failed (%s): %s", exc.category, exc.message, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()

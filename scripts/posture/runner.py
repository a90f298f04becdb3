"""Host-runner boundary: configure, collect, classify failures, emit once.

Construction failures (missing settings, bad key, rejected token exchange)
are reported as "config"; failures while collecting as "network"; a
cancelled run as "cancelled". Nothing is emitted unless the whole record
was collected.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional

from scripts.posture.base_client import OktaClient
from scripts.posture.cancellation import CancellationToken
from scripts.posture.collector import PostureCollector, build_client
from scripts.posture.config import CollectorConfig, config_from_mapping
from scripts.posture.errors import CancellationError, CollectorRunError, PostureError

logger = logging.getLogger("posture.runner")

CATEGORY_CONFIG = "config"
CATEGORY_NETWORK = "network"
CATEGORY_CANCELLED = "cancelled"

Emitter = Callable[[dict[str, Any]], None]


def run_config(
    config: CollectorConfig,
    emit: Emitter,
    token: Optional[CancellationToken] = None,
    client: Optional[OktaClient] = None,
) -> dict[str, Any]:
    """Collect with an already-loaded config and emit the record."""
    token = token or CancellationToken()
    owns_client = client is None
    try:
        if client is None:
            client = build_client(config, token=token)
    except CancellationError as exc:
        raise CollectorRunError(CATEGORY_CANCELLED, str(exc)) from exc
    except PostureError as exc:
        raise CollectorRunError(CATEGORY_CONFIG, f"creating collector: {exc}") from exc

    try:
        record = PostureCollector(config, client).collect(token=token).to_dict()
    except CancellationError as exc:
        raise CollectorRunError(CATEGORY_CANCELLED, str(exc)) from exc
    except PostureError as exc:
        raise CollectorRunError(CATEGORY_NETWORK, f"collecting posture: {exc}") from exc
    finally:
        if owns_client:
            client.close()

    emit(record)
    return record


def run_collection(
    settings: Optional[Mapping[str, object]],
    secrets: Mapping[str, str],
    emit: Emitter,
    token: Optional[CancellationToken] = None,
    client: Optional[OktaClient] = None,
) -> dict[str, Any]:
    """Run one collection from a host settings mapping and named secrets."""
    try:
        config = config_from_mapping(settings, secrets.get)
    except PostureError as exc:
        raise CollectorRunError(CATEGORY_CONFIG, str(exc)) from exc
    return run_config(config, emit, token=token, client=client)

"""Secret references for the Okta private key and API token.

A configured value is either the secret itself or a reference:

  aws-secret://NAME            AWS Secrets Manager, whole SecretString
  aws-secret://NAME#field      AWS Secrets Manager, one field of a JSON secret
  gcp-secret://NAME            GCP Secret Manager, GCP_PROJECT_ID, latest version
  gcp-secret://projects/...    GCP Secret Manager, full version resource name
  file:///path/to/okta.pem     local file

Cloud SDKs are imported only when a reference of their kind is resolved.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Callable

from scripts.posture.errors import ConfigurationError

logger = logging.getLogger("posture.secrets")


def _from_aws(ref: str) -> str:
    import boto3
    from botocore.exceptions import BotoCoreError, ClientError

    name, _, field_name = ref.partition("#")
    client = boto3.client("secretsmanager", region_name=os.environ.get("AWS_REGION", "us-east-1"))
    try:
        secret_string = client.get_secret_value(SecretId=name)["SecretString"]
    except (BotoCoreError, ClientError) as exc:
        raise ConfigurationError(f"cannot read AWS secret {name}: {exc}") from exc

    if not field_name:
        return secret_string
    try:
        return str(json.loads(secret_string)[field_name])
    except (ValueError, KeyError, TypeError) as exc:
        raise ConfigurationError(f"AWS secret {name} has no JSON field {field_name!r}") from exc


def _from_gcp(ref: str) -> str:
    from google.api_core.exceptions import GoogleAPIError
    from google.cloud import secretmanager

    if ref.startswith("projects/"):
        name = ref
    else:
        project = os.environ.get("GCP_PROJECT_ID", "")
        if not project:
            raise ConfigurationError(
                f"gcp-secret://{ref} needs GCP_PROJECT_ID or a full projects/... name"
            )
        name = f"projects/{project}/secrets/{ref}/versions/latest"

    client = secretmanager.SecretManagerServiceClient()
    try:
        response = client.access_secret_version(request={"name": name})
    except GoogleAPIError as exc:
        raise ConfigurationError(f"cannot read GCP secret {name}: {exc}") from exc
    return response.payload.data.decode("utf-8")


def _from_file(path: str) -> str:
    try:
        with open(path, encoding="utf-8") as fh:
            return fh.read()
    except OSError as exc:
        raise ConfigurationError(f"cannot read secret file {path}: {exc}") from exc


_RESOLVERS: dict[str, Callable[[str], str]] = {
    "aws-secret://": _from_aws,
    "gcp-secret://": _from_gcp,
    "file://": _from_file,
}


def resolve_secret(value: str) -> str:
    """Return the plaintext for `value`, following a secret reference if it is one."""
    for prefix, resolver in _RESOLVERS.items():
        if value.startswith(prefix):
            ref = value[len(prefix):]
            logger.debug("Resolving secret from %s%s", prefix, ref.partition("#")[0])
            return resolver(ref)
    return value

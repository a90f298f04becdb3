"""Posture summary record and the pure assembler that builds it."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Optional

SCHEMA_VERSION = "1.0.0"
MAX_PERCENTAGE = 100


def percent(count: int, total: int) -> int:
    """Integer percentage of count over total, truncated; 0 when total is 0."""
    if total == 0:
        return 0
    return (count * MAX_PERCENTAGE) // total


def format_timestamp(moment: datetime) -> str:
    """RFC 3339 UTC timestamp with second precision, e.g. 2026-01-31T08:00:00Z."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class Posture:
    mfa_coverage: int = 0  # % users with any active factor
    mfa_phishing_resistant: int = 0  # % users with WebAuthn/U2F
    sso_coverage: int = 0  # % apps using SAML/OIDC/WS-Fed


@dataclass(frozen=True)
class UserMetrics:
    password_expired: int = 0
    locked_out: int = 0
    inactive: int = 0


@dataclass(frozen=True)
class AppMetrics:
    provisioning_enabled: int = 0
    deprovisioning_enabled: int = 0


@dataclass(frozen=True)
class PolicyConfig:
    policy_count: int = 0
    mfa_required_all: bool = False
    mfa_required_any: bool = False
    session_lifetime_min_minutes: Optional[int] = None
    session_lifetime_max_minutes: Optional[int] = None
    idle_timeout_min_minutes: Optional[int] = None
    idle_timeout_max_minutes: Optional[int] = None


@dataclass(frozen=True)
class OrgPosture:
    schema_version: str
    collected_at: str
    org_domain: str
    posture: Posture
    users: UserMetrics
    apps: AppMetrics
    policy: PolicyConfig

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def assemble(
    org_domain: str,
    posture: Posture,
    users: UserMetrics,
    apps: AppMetrics,
    policy: PolicyConfig,
    collected_at: Optional[datetime] = None,
) -> OrgPosture:
    """Stamp schema version and collection time onto the finalized metric groups."""
    return OrgPosture(
        schema_version=SCHEMA_VERSION,
        collected_at=format_timestamp(collected_at or datetime.now(timezone.utc)),
        org_domain=org_domain,
        posture=posture,
        users=users,
        apps=apps,
        policy=policy,
    )

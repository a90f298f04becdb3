"""Read-only projections of the Okta API resources the collector consumes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an Okta timestamp ("2024-05-01T12:00:00.000Z") to aware UTC."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class User:
    id: str
    status: str
    last_login: Optional[datetime] = None
    login: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict) -> "User":
        profile = data.get("profile") or {}
        return cls(
            id=_str(data.get("id")),
            status=_str(data.get("status")),
            last_login=parse_timestamp(data.get("lastLogin")),
            login=profile.get("login"),
        )


@dataclass(frozen=True)
class Factor:
    id: str
    factor_type: str
    status: str
    provider: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict) -> "Factor":
        return cls(
            id=_str(data.get("id")),
            factor_type=_str(data.get("factorType")),
            status=_str(data.get("status")),
            provider=data.get("provider"),
        )


@dataclass(frozen=True)
class Application:
    id: str
    status: str
    sign_on_mode: str
    features: tuple[str, ...] = ()
    label: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict) -> "Application":
        return cls(
            id=_str(data.get("id")),
            status=_str(data.get("status")),
            sign_on_mode=_str(data.get("signOnMode")),
            features=tuple(data.get("features") or ()),
            label=data.get("label"),
        )


@dataclass(frozen=True)
class Policy:
    id: str
    type: str
    status: str
    name: Optional[str] = None
    priority: int = 0

    @classmethod
    def from_api(cls, data: dict) -> "Policy":
        return cls(
            id=_str(data.get("id")),
            type=_str(data.get("type")),
            status=_str(data.get("status")),
            name=data.get("name"),
            priority=_int(data.get("priority")),
        )


@dataclass(frozen=True)
class SignOnAction:
    access: str = ""
    require_factor: bool = False
    max_session_lifetime_minutes: int = 0
    max_session_idle_minutes: int = 0

    @classmethod
    def from_api(cls, data: dict) -> "SignOnAction":
        session = data.get("session") or {}
        return cls(
            access=_str(data.get("access")),
            require_factor=bool(data.get("requireFactor", False)),
            max_session_lifetime_minutes=_int(session.get("maxSessionLifetimeMinutes")),
            max_session_idle_minutes=_int(session.get("maxSessionIdleMinutes")),
        )


@dataclass(frozen=True)
class EnrollAction:
    self_enroll: str = ""  # CHALLENGE, LOGIN, NEVER

    @classmethod
    def from_api(cls, data: dict) -> "EnrollAction":
        return cls(self_enroll=_str(data.get("self")))


@dataclass(frozen=True)
class PolicyRule:
    id: str
    status: str
    name: Optional[str] = None
    priority: int = 0
    signon: Optional[SignOnAction] = None
    enroll: Optional[EnrollAction] = None

    @classmethod
    def from_api(cls, data: dict) -> "PolicyRule":
        actions = data.get("actions") or {}
        signon = actions.get("signon")
        enroll = actions.get("enroll")
        return cls(
            id=_str(data.get("id")),
            status=_str(data.get("status")),
            name=data.get("name"),
            priority=_int(data.get("priority")),
            signon=SignOnAction.from_api(signon) if isinstance(signon, dict) else None,
            enroll=EnrollAction.from_api(enroll) if isinstance(enroll, dict) else None,
        )


@dataclass(frozen=True)
class OrgSettings:
    id: str
    subdomain: str = ""
    company_name: str = ""
    status: str = ""
    created: Optional[datetime] = field(default=None, compare=False)

    @classmethod
    def from_api(cls, data: dict) -> "OrgSettings":
        return cls(
            id=_str(data.get("id")),
            subdomain=_str(data.get("subdomain")),
            company_name=_str(data.get("companyName")),
            status=_str(data.get("status")),
            created=parse_timestamp(data.get("created")),
        )

"""In-memory OktaClient serving fixture data, for tests and dry runs."""

from __future__ import annotations

from typing import Iterator, Optional, Sequence, TypeVar

from scripts.posture.base_client import OktaClient
from scripts.posture.errors import RemoteRequestError
from scripts.posture.models import Application, Factor, OrgSettings, Policy, PolicyRule, User

T = TypeVar("T")


def _pages(items: Sequence[T], page_size: int) -> Iterator[list[T]]:
    for i in range(0, len(items), page_size):
        yield list(items[i : i + page_size])


class InMemoryOktaClient(OktaClient):
    """Serves users, apps and policies from memory.

    Errors can be injected per resource: `failing_factors` / `failing_rules`
    hold user / policy ids whose sub-fetch raises RemoteRequestError, and
    `errors` maps an operation name ("users", "apps", "policies") to an
    exception raised by that operation. Every call is appended to `calls`.
    """

    def __init__(
        self,
        users: Optional[Sequence[User]] = None,
        factors: Optional[dict[str, list[Factor]]] = None,
        apps: Optional[Sequence[Application]] = None,
        policies: Optional[dict[str, list[Policy]]] = None,
        rules: Optional[dict[str, list[PolicyRule]]] = None,
        org: Optional[OrgSettings] = None,
        page_size: int = 200,
        failing_factors: Sequence[str] = (),
        failing_rules: Sequence[str] = (),
        errors: Optional[dict[str, Exception]] = None,
    ) -> None:
        self.users = list(users or [])
        self.factors = dict(factors or {})
        self.apps = list(apps or [])
        self.policies = dict(policies or {})
        self.rules = dict(rules or {})
        self.org = org or OrgSettings(id="00o-memory")
        self.page_size = max(page_size, 1)
        self.failing_factors = set(failing_factors)
        self.failing_rules = set(failing_rules)
        self.errors = dict(errors or {})
        self.calls: list[tuple[str, str]] = []

    def _maybe_fail(self, operation: str) -> None:
        exc = self.errors.get(operation)
        if exc is not None:
            raise exc

    def iter_users(self) -> Iterator[list[User]]:
        self.calls.append(("users", ""))
        self._maybe_fail("users")
        yield from _pages(self.users, self.page_size)

    def list_user_factors(self, user_id: str) -> list[Factor]:
        self.calls.append(("factors", user_id))
        if user_id in self.failing_factors:
            raise RemoteRequestError(
                f"factors API returned status 500 for user {user_id}", status_code=500
            )
        return list(self.factors.get(user_id, []))

    def iter_applications(self) -> Iterator[list[Application]]:
        self.calls.append(("apps", ""))
        self._maybe_fail("apps")
        yield from _pages(self.apps, self.page_size)

    def list_policies(self, policy_type: str) -> list[Policy]:
        self.calls.append(("policies", policy_type))
        self._maybe_fail("policies")
        return list(self.policies.get(policy_type, []))

    def list_policy_rules(self, policy_id: str) -> list[PolicyRule]:
        self.calls.append(("rules", policy_id))
        if policy_id in self.failing_rules:
            raise RemoteRequestError(
                f"policy rules API returned status 500 for policy {policy_id}", status_code=500
            )
        return list(self.rules.get(policy_id, []))

    def get_org_settings(self) -> OrgSettings:
        self.calls.append(("org", ""))
        return self.org

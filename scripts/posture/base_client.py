"""Abstract capability interface over the Okta resource families."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterator

from scripts.posture.models import Application, Factor, OrgSettings, Policy, PolicyRule, User


class OktaClient(ABC):
    """Read-only access to the resources the posture metrics are built from.

    Collections are exposed as lazy page iterators. Each call starts from the
    first page, so an iterator can be re-created to restart a fetch.
    """

    @abstractmethod
    def iter_users(self) -> Iterator[list[User]]:
        """Yield users one page at a time, in server order."""

    @abstractmethod
    def list_user_factors(self, user_id: str) -> list[Factor]:
        """Return the user's enrolled factors; [] when the user has none."""

    @abstractmethod
    def iter_applications(self) -> Iterator[list[Application]]:
        """Yield applications one page at a time, in server order."""

    @abstractmethod
    def list_policies(self, policy_type: str) -> list[Policy]:
        """Return all policies of the given type."""

    @abstractmethod
    def list_policy_rules(self, policy_id: str) -> list[PolicyRule]:
        """Return the rules of a policy in priority order."""

    @abstractmethod
    def get_org_settings(self) -> OrgSettings:
        """Return organization settings."""

    def close(self) -> None:
        """Release transport resources. No-op by default."""

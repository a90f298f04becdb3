"""Streaming folds from Okta resources into posture metric accumulators.

Each collector walks its collection one page at a time; nothing beyond the
current page is held in memory. Per-entity sub-fetches (a user's factors, a
policy's rules) that fail with RemoteRequestError contribute nothing and the
run continues. Everything else propagates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from scripts.posture.base_client import OktaClient
from scripts.posture.cancellation import CancellationToken
from scripts.posture.errors import RemoteRequestError
from scripts.posture.models import Application, Factor, PolicyRule, User
from scripts.posture.posture import AppMetrics, PolicyConfig, UserMetrics, percent

logger = logging.getLogger("posture.aggregators")

STATUS_ACTIVE = "ACTIVE"
STATUS_DEPROVISIONED = "DEPROVISIONED"
STATUS_PASSWORD_EXPIRED = "PASSWORD_EXPIRED"
STATUS_LOCKED_OUT = "LOCKED_OUT"

POLICY_TYPE_SIGN_ON = "OKTA_SIGN_ON"
POLICY_TYPE_MFA_ENROLL = "MFA_ENROLL"

PHISHING_RESISTANT_FACTORS = frozenset({"webauthn", "u2f"})
SSO_SIGN_ON_MODES = frozenset({"SAML_2_0", "SAML_1_1", "OPENID_CONNECT", "WS_FEDERATION"})
PROVISIONING_FEATURES = frozenset({"PUSH_NEW_USERS", "IMPORT_NEW_USERS"})
DEPROVISIONING_FEATURE = "PUSH_USER_DEACTIVATION"
ENROLL_REQUIRED_ACTIONS = frozenset({"CHALLENGE", "LOGIN"})

INACTIVE_DAYS_THRESHOLD = 90


def update_min_max(
    current_min: Optional[int], current_max: Optional[int], value: int
) -> tuple[Optional[int], Optional[int]]:
    """Fold value into (min, max). Non-positive values mean "not set"."""
    if value <= 0:
        return current_min, current_max
    if current_min is None or value < current_min:
        current_min = value
    if current_max is None or value > current_max:
        current_max = value
    return current_min, current_max


class _Finalizable:
    _finalized = False

    def _check_open(self) -> None:
        if self._finalized:
            raise RuntimeError(f"{type(self).__name__} already finalized")

    def _close(self) -> None:
        self._check_open()
        self._finalized = True


# ----------------------------------------------------------------------
# Users
# ----------------------------------------------------------------------


@dataclass
class UserAccumulator(_Finalizable):
    total: int = 0
    mfa_enrolled: int = 0
    phishing_resistant: int = 0
    password_expired: int = 0
    locked_out: int = 0
    inactive: int = 0

    def add_user(self, user: User, inactive_before: datetime) -> bool:
        """Count a user; returns False for deprovisioned users, which are skipped."""
        self._check_open()
        if user.status == STATUS_DEPROVISIONED:
            return False
        self.total += 1
        if user.last_login is None or user.last_login < inactive_before:
            self.inactive += 1
        if user.status == STATUS_PASSWORD_EXPIRED:
            self.password_expired += 1
        elif user.status == STATUS_LOCKED_OUT:
            self.locked_out += 1
        return True

    def add_factors(self, factors: Iterable[Factor]) -> None:
        self._check_open()
        has_mfa = False
        has_phishing_resistant = False
        for factor in factors:
            if factor.status != STATUS_ACTIVE:
                continue
            has_mfa = True
            if factor.factor_type.lower() in PHISHING_RESISTANT_FACTORS:
                has_phishing_resistant = True
        if has_mfa:
            self.mfa_enrolled += 1
        if has_phishing_resistant:
            self.phishing_resistant += 1

    @property
    def mfa_coverage(self) -> int:
        return percent(self.mfa_enrolled, self.total)

    @property
    def mfa_phishing_resistant(self) -> int:
        return percent(self.phishing_resistant, self.total)

    def finalize(self) -> UserMetrics:
        self._close()
        return UserMetrics(
            password_expired=percent(self.password_expired, self.total),
            locked_out=percent(self.locked_out, self.total),
            inactive=percent(self.inactive, self.total),
        )


def _user_factors(client: OktaClient, user_id: str) -> list[Factor]:
    try:
        return client.list_user_factors(user_id)
    except RemoteRequestError as exc:
        logger.warning("Skipping factors for user %s: %s", user_id, exc, extra={"resource": "factors"})
        return []


def collect_user_metrics(
    client: OktaClient,
    now: datetime,
    inactive_days: int = INACTIVE_DAYS_THRESHOLD,
    token: Optional[CancellationToken] = None,
) -> UserAccumulator:
    acc = UserAccumulator()
    inactive_before = now - timedelta(days=inactive_days)

    for page in client.iter_users():
        for user in page:
            if token is not None:
                token.raise_if_cancelled()
            if acc.add_user(user, inactive_before):
                acc.add_factors(_user_factors(client, user.id))

    logger.info("Aggregated users", extra={"resource": "users", "records": acc.total})
    return acc


# ----------------------------------------------------------------------
# Applications
# ----------------------------------------------------------------------


@dataclass
class AppAccumulator(_Finalizable):
    total: int = 0
    sso: int = 0
    provisioning: int = 0
    deprovisioning: int = 0

    def add_app(self, app: Application) -> None:
        self._check_open()
        self.total += 1
        if app.sign_on_mode in SSO_SIGN_ON_MODES:
            self.sso += 1
        features = set(app.features)
        if features & PROVISIONING_FEATURES:
            self.provisioning += 1
        if DEPROVISIONING_FEATURE in features:
            self.deprovisioning += 1

    @property
    def sso_coverage(self) -> int:
        return percent(self.sso, self.total)

    def finalize(self) -> AppMetrics:
        self._close()
        return AppMetrics(
            provisioning_enabled=percent(self.provisioning, self.total),
            deprovisioning_enabled=percent(self.deprovisioning, self.total),
        )


def collect_app_metrics(
    client: OktaClient, token: Optional[CancellationToken] = None
) -> AppAccumulator:
    acc = AppAccumulator()
    for page in client.iter_applications():
        if token is not None:
            token.raise_if_cancelled()
        for app in page:
            acc.add_app(app)

    logger.info("Aggregated applications", extra={"resource": "apps", "records": acc.total})
    return acc


# ----------------------------------------------------------------------
# Policies
# ----------------------------------------------------------------------


@dataclass
class PolicyAccumulator(_Finalizable):
    policy_count: int = 0
    # Shared by the sign-on and enrollment families
    mfa_required_count: int = 0
    session_lifetime_min: Optional[int] = None
    session_lifetime_max: Optional[int] = None
    idle_timeout_min: Optional[int] = None
    idle_timeout_max: Optional[int] = None

    def add_sign_on_rules(self, rules: Iterable[PolicyRule]) -> bool:
        """Fold the first active sign-on rule; returns True if the policy had one."""
        self._check_open()
        for rule in rules:
            if rule.status != STATUS_ACTIVE or rule.signon is None:
                continue
            signon = rule.signon
            self.session_lifetime_min, self.session_lifetime_max = update_min_max(
                self.session_lifetime_min,
                self.session_lifetime_max,
                signon.max_session_lifetime_minutes,
            )
            self.idle_timeout_min, self.idle_timeout_max = update_min_max(
                self.idle_timeout_min,
                self.idle_timeout_max,
                signon.max_session_idle_minutes,
            )
            if signon.require_factor:
                self.mfa_required_count += 1
            self.policy_count += 1
            return True
        return False

    def add_enroll_rules(self, rules: Iterable[PolicyRule]) -> None:
        """Fold the first active enrollment rule."""
        self._check_open()
        for rule in rules:
            if rule.status != STATUS_ACTIVE or rule.enroll is None:
                continue
            if rule.enroll.self_enroll.upper() in ENROLL_REQUIRED_ACTIONS:
                self.mfa_required_count += 1
            return

    def finalize(self) -> PolicyConfig:
        self._close()
        return PolicyConfig(
            policy_count=self.policy_count,
            mfa_required_all=self.policy_count > 0
            and self.mfa_required_count >= self.policy_count,
            mfa_required_any=self.mfa_required_count > 0,
            session_lifetime_min_minutes=self.session_lifetime_min,
            session_lifetime_max_minutes=self.session_lifetime_max,
            idle_timeout_min_minutes=self.idle_timeout_min,
            idle_timeout_max_minutes=self.idle_timeout_max,
        )


def _policy_rules(client: OktaClient, policy_id: str) -> Optional[list[PolicyRule]]:
    try:
        return client.list_policy_rules(policy_id)
    except RemoteRequestError as exc:
        logger.warning("Skipping policy %s: %s", policy_id, exc, extra={"resource": "policy_rules"})
        return None


def collect_policy_metrics(
    client: OktaClient, token: Optional[CancellationToken] = None
) -> PolicyAccumulator:
    acc = PolicyAccumulator()

    for policy in client.list_policies(POLICY_TYPE_SIGN_ON):
        if token is not None:
            token.raise_if_cancelled()
        if policy.status != STATUS_ACTIVE:
            continue
        rules = _policy_rules(client, policy.id)
        if rules is not None:
            acc.add_sign_on_rules(rules)

    for policy in client.list_policies(POLICY_TYPE_MFA_ENROLL):
        if token is not None:
            token.raise_if_cancelled()
        if policy.status != STATUS_ACTIVE:
            continue
        rules = _policy_rules(client, policy.id)
        if rules is not None:
            acc.add_enroll_rules(rules)

    logger.info("Aggregated policies", extra={"resource": "policies", "records": acc.policy_count})
    return acc

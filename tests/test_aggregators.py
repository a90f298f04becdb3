"""Tests for the user, application and policy folds and the full collection run."""

from __future__ import annotations

from datetime import timedelta

import pytest

from scripts.posture.aggregators import (
    AppAccumulator,
    PolicyAccumulator,
    UserAccumulator,
    collect_policy_metrics,
    collect_user_metrics,
    update_min_max,
)
from scripts.posture.cancellation import CancellationToken
from scripts.posture.collector import PostureCollector
from scripts.posture.config import CollectorConfig, OktaConfig
from scripts.posture.errors import CancellationError, ConfigurationError, RemoteRequestError
from scripts.posture.models import (
    Application,
    EnrollAction,
    Factor,
    Policy,
    PolicyRule,
    SignOnAction,
    User,
)
from scripts.posture.providers.memory import InMemoryOktaClient
from tests.helpers import RUN_START

CONFIG = CollectorConfig(okta=OktaConfig(org_domain="test.okta.com", api_token="unused"))


def _collect(client: InMemoryOktaClient):
    return PostureCollector(CONFIG, client).collect(now=RUN_START)


def _user(user_id: str, status: str = "ACTIVE", days_ago=30) -> User:
    last_login = None if days_ago is None else RUN_START - timedelta(days=days_ago)
    return User(id=user_id, status=status, last_login=last_login)


def _signon_rule(rule_id, require_factor=False, lifetime=0, idle=0, status="ACTIVE") -> PolicyRule:
    return PolicyRule(
        id=rule_id,
        status=status,
        signon=SignOnAction(
            access="ALLOW",
            require_factor=require_factor,
            max_session_lifetime_minutes=lifetime,
            max_session_idle_minutes=idle,
        ),
    )


def _enroll_rule(rule_id, self_enroll, status="ACTIVE") -> PolicyRule:
    return PolicyRule(id=rule_id, status=status, enroll=EnrollAction(self_enroll=self_enroll))


def _sign_on_policy(policy_id, status="ACTIVE") -> Policy:
    return Policy(id=policy_id, type="OKTA_SIGN_ON", status=status)


def _enroll_policy(policy_id, status="ACTIVE") -> Policy:
    return Policy(id=policy_id, type="MFA_ENROLL", status=status)


class TestScenarios:
    def test_empty_organization(self):
        result = _collect(InMemoryOktaClient())

        assert result.org_domain == "test.okta.com"
        assert result.posture.mfa_coverage == 0
        assert result.posture.mfa_phishing_resistant == 0
        assert result.posture.sso_coverage == 0
        assert result.users.password_expired == 0
        assert result.users.locked_out == 0
        assert result.users.inactive == 0
        assert result.apps.provisioning_enabled == 0
        assert result.apps.deprovisioning_enabled == 0
        assert result.policy.policy_count == 0
        assert result.policy.mfa_required_all is False
        assert result.policy.mfa_required_any is False
        assert result.policy.session_lifetime_min_minutes is None
        assert result.policy.session_lifetime_max_minutes is None
        assert result.policy.idle_timeout_min_minutes is None
        assert result.policy.idle_timeout_max_minutes is None

    def test_users(self):
        client = InMemoryOktaClient(
            users=[
                _user("user1"),
                _user("user2"),
                _user("user3", days_ago=120),
                _user("user4", status="LOCKED_OUT"),
                _user("user5", status="DEPROVISIONED"),
            ],
            factors={
                "user1": [Factor(id="f1", factor_type="push", status="ACTIVE", provider="OKTA")],
                "user2": [Factor(id="f2", factor_type="sms", status="ACTIVE")],
                "user3": [],
                "user4": [Factor(id="f3", factor_type="webauthn", status="ACTIVE")],
            },
        )
        result = _collect(client)

        assert result.posture.mfa_coverage == 75
        assert result.posture.mfa_phishing_resistant == 25
        assert result.users.locked_out == 25
        assert result.users.inactive == 25
        assert result.users.password_expired == 0
        assert ("factors", "user5") not in client.calls

    def test_apps(self):
        client = InMemoryOktaClient(
            apps=[
                Application(id="a1", status="ACTIVE", sign_on_mode="SAML_2_0", features=("PUSH_NEW_USERS",)),
                Application(id="a2", status="ACTIVE", sign_on_mode="OPENID_CONNECT"),
                Application(id="a3", status="ACTIVE", sign_on_mode="BROWSER_PLUGIN"),
                Application(
                    id="a4", status="ACTIVE", sign_on_mode="WS_FEDERATION",
                    features=("PUSH_USER_DEACTIVATION",),
                ),
            ]
        )
        result = _collect(client)

        assert result.posture.sso_coverage == 75
        assert result.apps.provisioning_enabled == 25
        assert result.apps.deprovisioning_enabled == 25

    def test_single_policy(self):
        client = InMemoryOktaClient(
            policies={"OKTA_SIGN_ON": [_sign_on_policy("p1")]},
            rules={"p1": [_signon_rule("r1", require_factor=True, lifetime=1440, idle=120)]},
        )
        policy = _collect(client).policy

        assert policy.policy_count == 1
        assert policy.mfa_required_all is True
        assert policy.mfa_required_any is True
        assert (policy.session_lifetime_min_minutes, policy.session_lifetime_max_minutes) == (1440, 1440)
        assert (policy.idle_timeout_min_minutes, policy.idle_timeout_max_minutes) == (120, 120)

    def test_two_policies_mixed(self):
        client = InMemoryOktaClient(
            policies={"OKTA_SIGN_ON": [_sign_on_policy("pA"), _sign_on_policy("pB")]},
            rules={
                "pA": [_signon_rule("rA", require_factor=False, lifetime=1440, idle=120)],
                "pB": [_signon_rule("rB", require_factor=True, lifetime=15, idle=5)],
            },
        )
        policy = _collect(client).policy

        assert policy.policy_count == 2
        assert policy.mfa_required_all is False
        assert policy.mfa_required_any is True
        assert (policy.session_lifetime_min_minutes, policy.session_lifetime_max_minutes) == (15, 1440)
        assert (policy.idle_timeout_min_minutes, policy.idle_timeout_max_minutes) == (5, 120)


class TestUsers:
    def test_inactivity_boundary(self):
        threshold = RUN_START - timedelta(days=90)
        acc = UserAccumulator()
        acc.add_user(User(id="at", status="ACTIVE", last_login=threshold), threshold)
        assert acc.inactive == 0
        acc.add_user(User(id="before", status="ACTIVE", last_login=threshold - timedelta(seconds=1)), threshold)
        assert acc.inactive == 1

    def test_inactivity_boundary_through_collection(self):
        client = InMemoryOktaClient(
            users=[
                User(id="at", status="ACTIVE", last_login=RUN_START - timedelta(days=90)),
                User(id="never", status="ACTIVE", last_login=None),
            ]
        )
        acc = collect_user_metrics(client, RUN_START)
        assert acc.total == 2
        assert acc.inactive == 1

    def test_deprovisioned_excluded_everywhere(self):
        client = InMemoryOktaClient(
            users=[
                _user("gone1", status="DEPROVISIONED", days_ago=None),
                _user("gone2", status="DEPROVISIONED", days_ago=400),
                _user("kept", status="PASSWORD_EXPIRED"),
            ],
            factors={"gone1": [Factor(id="f", factor_type="u2f", status="ACTIVE")]},
        )
        acc = collect_user_metrics(client, RUN_START)
        assert acc.total == 1
        assert acc.inactive == 0
        assert acc.phishing_resistant == 0
        assert acc.finalize().password_expired == 100

    def test_null_factor_fields_from_api(self):
        factor = Factor.from_api({"id": None, "factorType": None, "status": "ACTIVE", "provider": None})
        assert factor.factor_type == ""
        assert factor.id == ""

        acc = UserAccumulator()
        acc.add_user(_user("u1"), RUN_START - timedelta(days=90))
        acc.add_factors([factor])
        assert acc.mfa_enrolled == 1
        assert acc.phishing_resistant == 0

    def test_null_status_fields_from_api(self):
        user = User.from_api({"id": "u1", "status": None, "lastLogin": None})
        rule = PolicyRule.from_api({"id": "r1", "status": None, "actions": {"enroll": {"self": None}}})
        assert user.status == ""
        assert rule.status == ""
        assert rule.enroll.self_enroll == ""

    def test_inactive_factors_do_not_count(self):
        acc = UserAccumulator()
        acc.add_user(_user("u"), RUN_START)
        acc.add_factors([
            Factor(id="f1", factor_type="webauthn", status="PENDING_ACTIVATION"),
            Factor(id="f2", factor_type="sms", status="INACTIVE"),
        ])
        assert acc.mfa_enrolled == 0
        assert acc.phishing_resistant == 0

    def test_factor_type_case_insensitive(self):
        acc = UserAccumulator()
        acc.add_user(_user("u"), RUN_START)
        acc.add_factors([Factor(id="f1", factor_type="U2F", status="ACTIVE")])
        assert acc.phishing_resistant == 1

    def test_factor_failure_counts_as_no_factors(self):
        client = InMemoryOktaClient(
            users=[_user("ok"), _user("broken")],
            factors={
                "ok": [Factor(id="f1", factor_type="push", status="ACTIVE")],
                "broken": [Factor(id="f2", factor_type="push", status="ACTIVE")],
            },
            failing_factors=["broken"],
        )
        acc = collect_user_metrics(client, RUN_START)
        assert acc.total == 2
        assert acc.mfa_coverage == 50

    def test_pages_and_sub_fetches_in_server_order(self):
        client = InMemoryOktaClient(users=[_user(f"u{i}") for i in range(5)], page_size=2)
        collect_user_metrics(client, RUN_START)
        assert [c[1] for c in client.calls if c[0] == "factors"] == ["u0", "u1", "u2", "u3", "u4"]

    def test_users_list_failure_propagates(self):
        client = InMemoryOktaClient(errors={"users": RemoteRequestError("users API returned status 500")})
        with pytest.raises(RemoteRequestError):
            _collect(client)

    def test_cancellation_stops_fold(self):
        token = CancellationToken()
        token.cancel()
        client = InMemoryOktaClient(users=[_user("u1")])
        with pytest.raises(CancellationError):
            collect_user_metrics(client, RUN_START, token=token)


class TestApps:
    def test_saml_1_1_and_import_feature(self):
        acc = AppAccumulator()
        acc.add_app(Application(id="a", status="ACTIVE", sign_on_mode="SAML_1_1", features=("IMPORT_NEW_USERS",)))
        acc.add_app(Application(id="b", status="ACTIVE", sign_on_mode="AUTO_LOGIN"))
        assert acc.sso_coverage == 50
        assert acc.finalize().provisioning_enabled == 50

    def test_both_provisioning_markers_count_once(self):
        acc = AppAccumulator()
        acc.add_app(Application(
            id="a", status="ACTIVE", sign_on_mode="SAML_2_0",
            features=("PUSH_NEW_USERS", "IMPORT_NEW_USERS"),
        ))
        assert acc.provisioning == 1

    def test_apps_list_failure_propagates(self):
        client = InMemoryOktaClient(errors={"apps": RemoteRequestError("apps API returned status 403")})
        with pytest.raises(RemoteRequestError):
            _collect(client)


class TestPolicies:
    def test_only_first_active_signon_rule_used(self):
        client = InMemoryOktaClient(
            policies={"OKTA_SIGN_ON": [_sign_on_policy("p1")]},
            rules={"p1": [
                _signon_rule("inactive", require_factor=True, lifetime=5, status="INACTIVE"),
                _enroll_rule("not-signon", "CHALLENGE"),
                _signon_rule("first", require_factor=False, lifetime=600, idle=30),
                _signon_rule("second", require_factor=True, lifetime=10, idle=1),
            ]},
        )
        acc = collect_policy_metrics(client)
        assert acc.policy_count == 1
        assert acc.mfa_required_count == 0
        assert (acc.session_lifetime_min, acc.session_lifetime_max) == (600, 600)
        assert (acc.idle_timeout_min, acc.idle_timeout_max) == (30, 30)

    def test_policy_without_qualifying_rule_not_counted(self):
        client = InMemoryOktaClient(
            policies={"OKTA_SIGN_ON": [_sign_on_policy("p1"), _sign_on_policy("p2", status="INACTIVE")]},
            rules={
                "p1": [_signon_rule("r", status="INACTIVE")],
                "p2": [_signon_rule("r2", require_factor=True)],
            },
        )
        acc = collect_policy_metrics(client)
        assert acc.policy_count == 0
        assert ("rules", "p2") not in client.calls

    def test_zero_values_leave_ranges_unset(self):
        client = InMemoryOktaClient(
            policies={"OKTA_SIGN_ON": [_sign_on_policy("p1")]},
            rules={"p1": [_signon_rule("r1", require_factor=True, lifetime=0, idle=0)]},
        )
        policy = collect_policy_metrics(client).finalize()
        assert policy.policy_count == 1
        assert policy.session_lifetime_min_minutes is None
        assert policy.idle_timeout_max_minutes is None

    def test_enrollment_tally_shared_with_signon(self):
        client = InMemoryOktaClient(
            policies={
                "OKTA_SIGN_ON": [_sign_on_policy("s1")],
                "MFA_ENROLL": [_enroll_policy("e1")],
            },
            rules={
                "s1": [_signon_rule("r", require_factor=False, lifetime=60)],
                "e1": [_enroll_rule("er", "challenge")],
            },
        )
        policy = collect_policy_metrics(client).finalize()
        assert policy.policy_count == 1
        assert policy.mfa_required_any is True
        assert policy.mfa_required_all is True

    @pytest.mark.parametrize("setting,expected", [("CHALLENGE", 1), ("login", 1), ("NEVER", 0), ("", 0)])
    def test_enroll_self_settings(self, setting, expected):
        acc = PolicyAccumulator()
        acc.add_enroll_rules([_enroll_rule("r", setting)])
        assert acc.mfa_required_count == expected

    def test_only_first_active_enroll_rule_used(self):
        acc = PolicyAccumulator()
        acc.add_enroll_rules([
            _enroll_rule("inactive", "CHALLENGE", status="INACTIVE"),
            _enroll_rule("first", "NEVER"),
            _enroll_rule("second", "LOGIN"),
        ])
        assert acc.mfa_required_count == 0

    def test_enrollment_only_does_not_make_all_true(self):
        client = InMemoryOktaClient(
            policies={"MFA_ENROLL": [_enroll_policy("e1")]},
            rules={"e1": [_enroll_rule("er", "LOGIN")]},
        )
        policy = collect_policy_metrics(client).finalize()
        assert policy.policy_count == 0
        assert policy.mfa_required_all is False
        assert policy.mfa_required_any is True

    def test_rule_failure_skips_policy(self):
        client = InMemoryOktaClient(
            policies={"OKTA_SIGN_ON": [_sign_on_policy("bad"), _sign_on_policy("good")]},
            rules={"good": [_signon_rule("r", require_factor=True, lifetime=30, idle=10)]},
            failing_rules=["bad"],
        )
        policy = collect_policy_metrics(client).finalize()
        assert policy.policy_count == 1
        assert policy.mfa_required_all is True

    def test_policy_list_failure_propagates(self):
        client = InMemoryOktaClient(errors={"policies": RemoteRequestError("policies API returned status 500")})
        with pytest.raises(RemoteRequestError):
            collect_policy_metrics(client)


@pytest.mark.parametrize(
    "start,value,expected",
    [
        ((None, None), 30, (30, 30)),
        ((30, 30), 10, (10, 30)),
        ((10, 30), 60, (10, 60)),
        ((10, 30), 0, (10, 30)),
        ((None, None), -5, (None, None)),
    ],
)
def test_update_min_max(start, value, expected):
    assert update_min_max(start[0], start[1], value) == expected


def test_accumulator_finalized_once():
    acc = AppAccumulator()
    acc.finalize()
    with pytest.raises(RuntimeError):
        acc.finalize()
    with pytest.raises(RuntimeError):
        acc.add_app(Application(id="a", status="ACTIVE", sign_on_mode="SAML_2_0"))


def test_missing_org_domain():
    config = CollectorConfig(okta=OktaConfig(org_domain=""))
    with pytest.raises(ConfigurationError):
        PostureCollector(config, InMemoryOktaClient()).collect()


def test_percentages_within_bounds():
    client = InMemoryOktaClient(
        users=[_user(f"u{i}", status="LOCKED_OUT" if i % 3 else "ACTIVE", days_ago=i * 40) for i in range(7)],
        factors={f"u{i}": [Factor(id="f", factor_type="webauthn", status="ACTIVE")] for i in range(0, 7, 2)},
        apps=[Application(id=f"a{i}", status="ACTIVE", sign_on_mode="SAML_2_0") for i in range(3)],
        page_size=3,
    )
    record = _collect(client).to_dict()
    values = [*record["posture"].values(), *record["users"].values(), *record["apps"].values()]
    assert all(0 <= v <= 100 for v in values)

"""Tests for the cross-account trust broker."""

from unittest import mock

import pytest

from controller.src.accounts.local import InProcessAccount
from controller.src.errors import ConfigurationError, TrustDenied
from controller.src.models.pipeline import TrustedOperation
from controller.src.security.trust import CrossAccountTrustBroker, RoleHandle, role_arn

from conftest import PIPELINE_ACCOUNT, UAT_ACCOUNT

CALLER = role_arn(PIPELINE_ACCOUNT, "pipeline-role")
ORCHESTRATE = TrustedOperation.ORCHESTRATE
DEPLOY = TrustedOperation.DEPLOY

def make_broker(account, patterns=None):
    return CrossAccountTrustBroker(
        caller=CALLER,
        accounts={UAT_ACCOUNT: account},
        trusted_operations={
            (UAT_ACCOUNT, "CodePipelineCrossAccountRole"): [ORCHESTRATE],
            (UAT_ACCOUNT, "CloudFormationDeploymentRole"): [DEPLOY],
        },
        assume_role_patterns=patterns if patterns is not None else [f"arn:aws:iam::{UAT_ACCOUNT}:role/*"],
    )

def spy_account():
    account = mock.MagicMock(spec=InProcessAccount)
    account.account_id = UAT_ACCOUNT
    account.ping.return_value = True
    return account

def test_session_is_revoked_on_exit(uat_account):
    broker = make_broker(uat_account)
    handle = broker.resolve_role(UAT_ACCOUNT, "CodePipelineCrossAccountRole")

    with broker.session(handle, [ORCHESTRATE]) as credentials:
        assert credentials.role_arn == handle.arn
        assert credentials.operations == frozenset([ORCHESTRATE])
        assert len(uat_account.active_sessions) == 1

    assert uat_account.active_sessions == []

def test_credentials_repr_hides_secrets(uat_account):
    broker = make_broker(uat_account)
    handle = broker.resolve_role(UAT_ACCOUNT, "CodePipelineCrossAccountRole")

    credentials = broker.assume(handle, [ORCHESTRATE])

    assert credentials.secret_access_key not in repr(credentials)
    assert credentials.session_token not in repr(credentials)

def test_operation_outside_trust_fails_before_contact():
    account = spy_account()
    broker = make_broker(account)
    handle = broker.resolve_role(UAT_ACCOUNT, "CodePipelineCrossAccountRole")

    with pytest.raises(TrustDenied, match="not trusted"):
        broker.assume(handle, [DEPLOY])

    account.assume_role.assert_not_called()

def test_empty_operation_set_is_denied():
    account = spy_account()
    broker = make_broker(account)
    handle = broker.resolve_role(UAT_ACCOUNT, "CodePipelineCrossAccountRole")

    with pytest.raises(TrustDenied):
        broker.assume(handle, [])

    account.assume_role.assert_not_called()

def test_role_outside_assume_patterns_is_denied():
    account = spy_account()
    broker = make_broker(account, patterns=[f"arn:aws:iam::{UAT_ACCOUNT}:role/Deploy*"])
    handle = broker.resolve_role(UAT_ACCOUNT, "CodePipelineCrossAccountRole")

    with pytest.raises(TrustDenied, match="not allowed to assume"):
        broker.assume(handle, [ORCHESTRATE])

    account.assume_role.assert_not_called()

def test_handles_cannot_be_constructed_directly():
    with pytest.raises(TypeError):
        RoleHandle(
            account_id=UAT_ACCOUNT,
            role_name="CodePipelineCrossAccountRole",
            arn=role_arn(UAT_ACCOUNT, "CodePipelineCrossAccountRole"),
            operations=frozenset([ORCHESTRATE, DEPLOY]),
        )

def test_handle_from_another_broker_is_denied(uat_account):
    account = spy_account()
    other = make_broker(uat_account)
    broker = make_broker(account)
    foreign_handle = other.resolve_role(UAT_ACCOUNT, "CodePipelineCrossAccountRole")

    with pytest.raises(TrustDenied, match="not issued"):
        broker.assume(foreign_handle, [ORCHESTRATE])

    account.assume_role.assert_not_called()

def test_foreign_account_can_still_refuse():
    account = InProcessAccount(UAT_ACCOUNT)
    # The role exists but trusts a different account
    account.add_role("CodePipelineCrossAccountRole", "999999999999")
    broker = make_broker(account)
    handle = broker.resolve_role(UAT_ACCOUNT, "CodePipelineCrossAccountRole")

    with pytest.raises(TrustDenied, match="not trusted by"):
        broker.assume(handle, [ORCHESTRATE])

@pytest.mark.parametrize("account_id, role_name, match", [
    ("12345", "CodePipelineCrossAccountRole", "Invalid account id"),
    (UAT_ACCOUNT, "bad role/name", "Invalid role name"),
    (UAT_ACCOUNT, "UnknownRole", "no configured trusted operations"),
])
def test_resolve_role_rejects_bad_configuration(uat_account, account_id, role_name, match):
    broker = make_broker(uat_account)

    with pytest.raises(ConfigurationError, match=match):
        broker.resolve_role(account_id, role_name)

def test_resolve_role_requires_reachable_account():
    account = spy_account()
    account.ping.return_value = False
    broker = make_broker(account)

    with pytest.raises(ConfigurationError, match="not reachable"):
        broker.resolve_role(UAT_ACCOUNT, "CodePipelineCrossAccountRole")

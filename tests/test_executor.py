"""
Tests for the apply executor
"""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import EndpointConnectionError

from conftest import READ_ONLY_ARN, S3_READ_ARN
from oidc_trust_reconciler.errors import DependencyOrderError
from oidc_trust_reconciler.executor import ApplyExecutor
from oidc_trust_reconciler.operations import (AttachPolicy, CreatePolicy, CreateRole, DetachPolicy,
                                              OperationStatus)
from oidc_trust_reconciler.remote_store import Boto3RemoteStore

ROLE = "GitHubActionsDeploy"
DOC = '{"Version": "2012-10-17", "Statement": []}'


def create_role():
    return CreateRole(ROLE, "", {"Version": "2012-10-17", "Statement": []}, 3600, {})


@pytest.mark.unit
class TestApplyExecutor:
    """Test cases for ApplyExecutor."""

    def test_all_operations_applied(self, store):
        role = create_role()
        operations = [role, AttachPolicy(ROLE, policy_arn=READ_ONLY_ARN, depends_on=[role.key])]

        report = ApplyExecutor(store).apply(operations)

        assert report.succeeded
        assert [o.status for o in report.outcomes] == [OperationStatus.APPLIED, OperationStatus.APPLIED]
        assert store.attachments[ROLE] == [READ_ONLY_ARN]

    def test_noop_is_skipped(self, store):
        store.create_role(ROLE, "", {}, 3600, {})

        report = ApplyExecutor(store).apply([DetachPolicy(ROLE, READ_ONLY_ARN)])

        assert report.succeeded
        assert report.outcomes[0].status is OperationStatus.SKIPPED

    def test_failure_does_not_abort_independent_operations(self, store):
        store.create_role(ROLE, "", {}, 3600, {})
        store.fail("attach_policy", READ_ONLY_ARN)

        report = ApplyExecutor(store).apply([
            AttachPolicy(ROLE, policy_arn=READ_ONLY_ARN),
            AttachPolicy(ROLE, policy_arn=S3_READ_ARN),
        ])

        assert not report.succeeded
        assert [o.status for o in report.outcomes] == [OperationStatus.FAILED, OperationStatus.APPLIED]
        assert "LimitExceeded" in report.outcomes[0].error
        assert store.attachments[ROLE] == [S3_READ_ARN]

    def test_dependents_of_failed_operation_are_blocked(self, store):
        store.fail("create_role", ROLE)
        role = create_role()
        attach = AttachPolicy(ROLE, policy_arn=READ_ONLY_ARN, depends_on=[role.key])

        report = ApplyExecutor(store).apply([role, attach])

        assert [o.status for o in report.outcomes] == [OperationStatus.FAILED, OperationStatus.FAILED]
        assert report.outcomes[1].error == f"blocked by failed prerequisite {role.key}"
        assert ("attach_policy", READ_ONLY_ARN) not in store.calls

    def test_created_policy_arn_feeds_attach(self, store):
        store.create_role(ROLE, "", {}, 3600, {})
        create = CreatePolicy(ROLE, "p1", DOC, {})
        attach = AttachPolicy(ROLE, custom_name="p1", depends_on=[create.key])

        report = ApplyExecutor(store).apply([create, attach])

        assert report.succeeded
        assert store.attachments[ROLE] == [next(iter(store.policies))]

    def test_out_of_order_operation_is_a_defect(self, store):
        create = CreatePolicy(ROLE, "p1", DOC, {})
        attach = AttachPolicy(ROLE, custom_name="p1", depends_on=[create.key])

        with pytest.raises(DependencyOrderError):
            ApplyExecutor(store).apply([attach, create])

    def test_report_to_dict(self, store):
        store.create_role(ROLE, "", {}, 3600, {})
        store.fail("attach_policy", READ_ONLY_ARN)

        report = ApplyExecutor(store).apply([AttachPolicy(ROLE, policy_arn=READ_ONLY_ARN),
                                             DetachPolicy(ROLE, S3_READ_ARN)])
        summary = report.to_dict()

        assert summary["succeeded"] is False
        assert (summary["applied"], summary["skipped"], summary["failed"]) == (0, 1, 1)
        assert summary["operations"][0]["status"] == "failed"
        assert "error" in summary["operations"][0]
        assert "error" not in summary["operations"][1]

    def test_connection_error_is_recorded_and_siblings_continue(self):
        iam = MagicMock()
        iam.detach_role_policy.side_effect = EndpointConnectionError(endpoint_url="https://iam.amazonaws.com")

        report = ApplyExecutor(Boto3RemoteStore(iam_client=iam)).apply([
            DetachPolicy(ROLE, READ_ONLY_ARN),
            AttachPolicy(ROLE, policy_arn=S3_READ_ARN),
        ])

        assert [o.status for o in report.outcomes] == [OperationStatus.FAILED, OperationStatus.APPLIED]
        assert "DetachRolePolicy" in report.outcomes[0].error
        iam.attach_role_policy.assert_called_once_with(RoleName=ROLE, PolicyArn=S3_READ_ARN)

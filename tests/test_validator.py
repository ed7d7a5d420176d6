"""
Tests for validator module
"""

import pytest

from conftest import READ_ONLY_ARN, make_config
from oidc_trust_reconciler.errors import ValidationError
from oidc_trust_reconciler.validator import ensure_valid, validate_config


@pytest.mark.unit
class TestRepositoryChecks:
    """Test cases for repository identifier validation."""

    def test_valid_repositories(self):
        config = make_config(github_repositories=("org/a", "My-Org/repo.name_1"))
        assert validate_config(config) == []

    def test_empty_repository_list(self):
        failures = validate_config(make_config(github_repositories=()))
        assert failures == ["github_repositories must contain at least one repository"]

    @pytest.mark.parametrize("repository", ["onlyname", "org/", "/repo", "org/repo/extra", "-org/repo", "org/*"])
    def test_invalid_repository(self, repository):
        failures = validate_config(make_config(github_repositories=(repository,)))
        assert len(failures) == 1
        assert repository in failures[0]


@pytest.mark.unit
class TestPolicyChecks:
    """Test cases for custom policy documents and managed ARNs."""

    def test_invalid_json_document(self):
        failures = validate_config(make_config(custom_policies={"p1": "{ not json"}))
        assert len(failures) == 1
        assert "'p1' is not valid JSON" in failures[0]

    def test_json_document_must_be_an_object(self):
        failures = validate_config(make_config(custom_policies={"p1": "[]"}))
        assert failures == ["Custom policy 'p1' must be a JSON object"]

    def test_valid_managed_arns(self):
        config = make_config(managed_policy_arns=(READ_ONLY_ARN, "arn:aws:iam::123456789012:policy/team/Custom"))
        assert validate_config(config) == []

    def test_s3_arn_rejected_as_managed_policy(self):
        failures = validate_config(make_config(managed_policy_arns=("arn:aws:s3:::bucket",)))
        assert failures == ["Invalid managed policy ARN 'arn:aws:s3:::bucket'"]

    def test_short_account_id_rejected(self):
        failures = validate_config(make_config(managed_policy_arns=("arn:aws:iam::12345:policy/X",)))
        assert len(failures) == 1


@pytest.mark.unit
class TestSessionDuration:
    """Test cases for session duration bounds."""

    @pytest.mark.parametrize("duration", [900, 3600, 43200])
    def test_boundaries_are_inclusive(self, duration):
        assert validate_config(make_config(max_session_duration=duration)) == []

    @pytest.mark.parametrize("duration", [899, 43201, 44000, 0])
    def test_out_of_range(self, duration):
        failures = validate_config(make_config(max_session_duration=duration))
        assert len(failures) == 1
        assert "max_session_duration" in failures[0]


@pytest.mark.unit
class TestAccumulation:
    """Failures are reported together, in check order."""

    def test_all_failures_reported_in_order(self):
        config = make_config(
            github_repositories=("onlyname",),
            custom_policies={"p1": "nope"},
            managed_policy_arns=("arn:aws:s3:::bucket",),
            max_session_duration=44000,
        )

        failures = validate_config(config)

        assert len(failures) == 4
        assert "onlyname" in failures[0]
        assert "'p1'" in failures[1]
        assert "arn:aws:s3:::bucket" in failures[2]
        assert "max_session_duration" in failures[3]

    def test_iam_limits(self):
        config = make_config(
            role_name="has space",
            custom_policies={"bad name": "{}"},
            tags={f"k{i}": "v" for i in range(51)},
        )

        failures = validate_config(config)

        assert "Invalid role name 'has space'" in failures
        assert "Invalid custom policy name 'bad name'" in failures
        assert any("At most 50 tags" in f for f in failures)

    def test_too_many_policies(self):
        managed = tuple(f"arn:aws:iam::aws:policy/P{i}" for i in range(21))
        failures = validate_config(make_config(managed_policy_arns=managed))
        assert any("at most 20" in f for f in failures)


@pytest.mark.unit
class TestEnsureValid:
    """Test cases for ensure_valid."""

    def test_valid_config_passes(self, config):
        ensure_valid(config)

    def test_invalid_config_raises_with_failures(self):
        with pytest.raises(ValidationError) as exc_info:
            ensure_valid(make_config(github_repositories=("onlyname",), max_session_duration=44000))
        assert len(exc_info.value.failures) == 2


@pytest.mark.unit
class TestMalformedValues:
    """Configs built in code with wrong value types are reported, not crashed on."""

    def test_bare_string_is_one_repository(self):
        config = make_config(github_repositories="org/a")
        assert config.github_repositories == ("org/a",)
        assert validate_config(config) == []

    def test_non_string_repository_is_reported(self):
        failures = validate_config(make_config(github_repositories=("org/a", 42, ["org/b"])))
        assert len(failures) == 2
        assert all("Invalid repository identifier" in f for f in failures)

    def test_non_string_managed_arn_is_reported(self):
        failures = validate_config(make_config(managed_policy_arns=(READ_ONLY_ARN, None)))
        assert failures == ["Invalid managed policy ARN 'None'"]

    def test_missing_description_counts_as_empty(self):
        config = make_config(role_description=None)
        assert config.role_description == ""
        assert validate_config(config) == []

    def test_non_string_description_is_reported(self):
        failures = validate_config(make_config(role_description=123))
        assert failures == ["role_description must be a string, got int"]

    def test_non_string_role_name_is_reported(self):
        failures = validate_config(make_config(role_name=None))
        assert failures == ["Invalid role name 'None'"]

    def test_non_string_policy_name_is_reported(self):
        failures = validate_config(make_config(custom_policies={7: '{"Version": "2012-10-17"}'}))
        assert failures == ["Invalid custom policy name '7'"]

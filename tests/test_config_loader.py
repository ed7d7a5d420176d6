"""
Tests for config_loader module
"""

import json

import pytest

from oidc_trust_reconciler.config_loader import (
    _load_json_file,
    load_config,
    parse_config,
)
from oidc_trust_reconciler.errors import ConfigError


def _write_config(directory, data):
    config_file = directory / "role.json"
    config_file.write_text(json.dumps(data))
    return config_file


@pytest.mark.unit
class TestConfigError:
    """Test cases for ConfigError exception."""

    def test_config_error_inheritance(self):
        assert issubclass(ConfigError, Exception)

    def test_config_error_message(self):
        error = ConfigError("Test error message")
        assert str(error) == "Test error message"


@pytest.mark.unit
class TestLoadJsonFile:
    """Test cases for _load_json_file function."""

    def test_load_json_file_success(self, tmp_path):
        json_file = tmp_path / "test.json"
        json_file.write_text(json.dumps({"key": "value"}))
        assert _load_json_file(str(json_file)) == {"key": "value"}

    def test_load_json_file_not_found(self):
        with pytest.raises(ConfigError, match="Required config file not found"):
            _load_json_file("/nonexistent/file.json")

    def test_load_json_file_invalid_json(self, tmp_path):
        json_file = tmp_path / "invalid.json"
        json_file.write_text("{ invalid json }")
        with pytest.raises(ConfigError, match="Error decoding JSON"):
            _load_json_file(str(json_file))

    def test_load_json_file_not_an_object(self, tmp_path):
        json_file = tmp_path / "list.json"
        json_file.write_text(json.dumps(["a", "b"]))
        with pytest.raises(ConfigError, match="not a valid JSON object"):
            _load_json_file(str(json_file))


@pytest.mark.unit
class TestParseConfig:
    """Test cases for parse_config function."""

    def test_parse_minimal_config_uses_defaults(self):
        config = parse_config({"roleName": "Deploy", "githubRepositories": ["org/a"]})

        assert config.role_name == "Deploy"
        assert config.github_repositories == ("org/a",)
        assert config.max_session_duration == 3600
        assert config.create_oidc_provider is True
        assert config.custom_policies == {}
        assert config.managed_policy_arns == ()
        assert config.role_description == ""

    def test_parse_full_config(self):
        data = {
            "roleName": "Deploy",
            "description": "CI deploy role",
            "githubRepositories": ["org/a", "org/b", "org/a"],
            "customPolicies": {
                "s3": {"Version": "2012-10-17", "Statement": []},
                "raw": '{"Version": "2012-10-17", "Statement": []}',
            },
            "managedPolicyArns": ["arn:aws:iam::aws:policy/ReadOnlyAccess"],
            "maxSessionDuration": 7200,
            "createOidcProvider": False,
            "tags": {"Team": "Platform", "CostCenter": 42},
        }

        config = parse_config(data)

        assert config.github_repositories == ("org/a", "org/b")
        assert json.loads(config.custom_policies["s3"]) == {"Version": "2012-10-17", "Statement": []}
        assert config.custom_policies["raw"] == '{"Version": "2012-10-17", "Statement": []}'
        assert config.max_session_duration == 7200
        assert config.create_oidc_provider is False
        assert config.tags == {"Team": "Platform", "CostCenter": "42"}

    def test_missing_required_fields(self):
        with pytest.raises(ConfigError, match="Missing required fields"):
            parse_config({"roleName": "Deploy"})

    def test_repositories_must_be_a_list(self):
        with pytest.raises(ConfigError, match="githubRepositories"):
            parse_config({"roleName": "Deploy", "githubRepositories": "org/a"})

    def test_session_duration_must_be_an_integer(self):
        with pytest.raises(ConfigError, match="maxSessionDuration"):
            parse_config({"roleName": "Deploy", "githubRepositories": ["org/a"], "maxSessionDuration": "3600"})

    def test_custom_policy_of_wrong_type(self):
        with pytest.raises(ConfigError, match="Custom policy 'bad'"):
            parse_config({"roleName": "Deploy", "githubRepositories": ["org/a"], "customPolicies": {"bad": 1}})

    def test_invalid_repository_values_are_left_to_the_validator(self):
        """Grammar is checked by the validator, not the loader."""
        config = parse_config({"roleName": "Deploy", "githubRepositories": ["onlyname"]})
        assert config.github_repositories == ("onlyname",)


@pytest.mark.unit
class TestLoadConfig:
    """Test cases for load_config function."""

    def test_load_config_with_policy_files(self, tmp_path):
        config_file = _write_config(tmp_path, {"roleName": "Deploy", "githubRepositories": ["org/a"]})
        (tmp_path / "policy-logs.json").write_text('{"Version": "2012-10-17", "Statement": []}')
        (tmp_path / "notes.json").write_text("{}")

        config = load_config(str(config_file))

        assert list(config.custom_policies) == ["logs"]
        assert config.custom_policies["logs"] == '{"Version": "2012-10-17", "Statement": []}'

    def test_invalid_policy_file_is_kept_as_raw_text(self, tmp_path):
        """Malformed policy files reach the validator unchanged."""
        config_file = _write_config(tmp_path, {"roleName": "Deploy", "githubRepositories": ["org/a"]})
        (tmp_path / "policy-broken.json").write_text("{ nope")

        config = load_config(str(config_file))

        assert config.custom_policies["broken"] == "{ nope"

    def test_policy_defined_twice(self, tmp_path):
        config_file = _write_config(tmp_path, {
            "roleName": "Deploy",
            "githubRepositories": ["org/a"],
            "customPolicies": {"logs": {"Version": "2012-10-17", "Statement": []}},
        })
        (tmp_path / "policy-logs.json").write_text("{}")

        with pytest.raises(ConfigError, match="both inline and as a policy file"):
            load_config(str(config_file))

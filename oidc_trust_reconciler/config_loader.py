import os
import json
import logging

from . import constants
from .errors import ConfigError
from .models import DesiredConfig

logger = logging.getLogger(__name__)

POLICY_FILE_PREFIX = "policy-"
REQUIRED_FIELDS = ["roleName", "githubRepositories"]


def _load_json_file(file_path: str) -> dict:
    """Helper to load a JSON object from disk."""
    if not os.path.exists(file_path):
        raise ConfigError(f"Required config file not found: {file_path}")
    try:
        with open(file_path, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Error decoding JSON from {file_path}: {e}")
    except OSError as e:
        raise ConfigError(f"Error reading file {file_path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {file_path} is not a valid JSON object.")
    logger.debug(f"Successfully loaded config file: {file_path}")
    return data


def _expect(data: dict, key: str, expected_type, default=None):
    value = data.get(key, default)
    if not isinstance(value, expected_type):
        raise ConfigError(f"Field '{key}' must be of type {expected_type.__name__}, got {type(value).__name__}")
    return value


def _policy_text(name: str, value) -> str:
    """Custom policy documents may be given inline as objects or as raw JSON text."""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return json.dumps(value)
    raise ConfigError(f"Custom policy '{name}' must be a JSON object or a JSON string")


def _discover_policy_files(config_dir: str) -> dict[str, str]:
    """Reads policy-<name>.json files next to the config file as raw text."""
    policies = {}
    for item_name in sorted(os.listdir(config_dir)):
        if item_name.startswith(POLICY_FILE_PREFIX) and item_name.endswith(".json"):
            policy_name = item_name[len(POLICY_FILE_PREFIX):-len(".json")]
            policy_path = os.path.join(config_dir, item_name)
            try:
                with open(policy_path, 'r') as f:
                    policies[policy_name] = f.read()
            except OSError as e:
                raise ConfigError(f"Error reading policy file {policy_path}: {e}")
            logger.debug(f"Loaded custom policy '{policy_name}' from {policy_path}")
    return policies


def parse_config(data: dict, policy_files: dict[str, str] | None = None) -> DesiredConfig:
    """Builds a DesiredConfig from a decoded config object. Types are checked here, values by the validator."""
    missing_fields = [key for key in REQUIRED_FIELDS if key not in data]
    if missing_fields:
        raise ConfigError(f"Missing required fields: {missing_fields}")

    repositories = _expect(data, "githubRepositories", list)
    managed_arns = _expect(data, "managedPolicyArns", list, [])
    for value in repositories + managed_arns:
        if not isinstance(value, str):
            raise ConfigError(f"Repository identifiers and policy ARNs must be strings, got {value!r}")

    custom_policies = {
        name: _policy_text(name, value)
        for name, value in _expect(data, "customPolicies", dict, {}).items()
    }
    for name, text in (policy_files or {}).items():
        if name in custom_policies:
            raise ConfigError(f"Custom policy '{name}' is defined both inline and as a policy file")
        custom_policies[name] = text

    tags = _expect(data, "tags", dict, {})
    max_session_duration = data.get("maxSessionDuration", constants.DEFAULT_SESSION_DURATION)
    if isinstance(max_session_duration, bool) or not isinstance(max_session_duration, int):
        raise ConfigError(f"Field 'maxSessionDuration' must be an integer, got {max_session_duration!r}")

    return DesiredConfig(
        role_name=_expect(data, "roleName", str),
        role_description=_expect(data, "description", str, ""),
        max_session_duration=max_session_duration,
        github_repositories=tuple(repositories),
        custom_policies=custom_policies,
        managed_policy_arns=tuple(managed_arns),
        create_oidc_provider=_expect(data, "createOidcProvider", bool, True),
        tags={str(k): str(v) for k, v in tags.items()},
    )


def load_config(config_file: str) -> DesiredConfig:
    """Loads the desired configuration from a JSON file plus any sibling policy files."""
    logger.info(f"Loading desired configuration from '{config_file}'.")
    data = _load_json_file(config_file)
    policy_files = _discover_policy_files(os.path.dirname(os.path.abspath(config_file)))
    config = parse_config(data, policy_files)
    logger.info(f"Loaded {config}")
    return config

"""
Pre-flight validation of a DesiredConfig.

Runs before any remote call. Failures are accumulated so a single report
lists everything wrong with the configuration.
"""

import json
import logging
import re

from . import constants
from .errors import ValidationError
from .models import DesiredConfig, custom_policy_name

logger = logging.getLogger(__name__)

_REPOSITORY_RE = re.compile(constants.REPOSITORY_PATTERN)
_POLICY_ARN_RE = re.compile(constants.POLICY_ARN_PATTERN)
_ROLE_NAME_RE = re.compile(constants.ROLE_NAME_PATTERN)
_POLICY_NAME_RE = re.compile(constants.POLICY_NAME_PATTERN)


def _check_repositories(config: DesiredConfig) -> list[str]:
    if not config.github_repositories:
        return ["github_repositories must contain at least one repository"]
    return [
        f"Invalid repository identifier '{repo}': expected 'owner/repo'"
        for repo in config.github_repositories
        if not isinstance(repo, str) or not _REPOSITORY_RE.match(repo)
    ]


def _check_policy_documents(config: DesiredConfig) -> list[str]:
    failures = []
    for name, document in config.custom_policies.items():
        try:
            parsed = json.loads(document)
        except (TypeError, ValueError) as e:
            failures.append(f"Custom policy '{name}' is not valid JSON: {e}")
            continue
        if not isinstance(parsed, dict):
            failures.append(f"Custom policy '{name}' must be a JSON object")
    return failures


def _check_managed_arns(config: DesiredConfig) -> list[str]:
    return [
        f"Invalid managed policy ARN '{arn}'"
        for arn in config.managed_policy_arns
        if not isinstance(arn, str) or not _POLICY_ARN_RE.match(arn)
    ]


def _check_session_duration(config: DesiredConfig) -> list[str]:
    duration = config.max_session_duration
    if (isinstance(duration, bool) or not isinstance(duration, int)
            or not constants.MIN_SESSION_DURATION <= duration <= constants.MAX_SESSION_DURATION):
        return [
            f"max_session_duration {duration!r} must be an integer between "
            f"{constants.MIN_SESSION_DURATION} and {constants.MAX_SESSION_DURATION} seconds"
        ]
    return []


def _check_iam_limits(config: DesiredConfig) -> list[str]:
    failures = []
    if not isinstance(config.role_name, str) or not _ROLE_NAME_RE.match(config.role_name):
        failures.append(f"Invalid role name '{config.role_name}'")
    for name in config.custom_policies:
        if not isinstance(name, str) or not _POLICY_NAME_RE.match(name):
            failures.append(f"Invalid custom policy name '{name}'")
        elif len(custom_policy_name(config.role_name, name)) > constants.MAX_POLICY_NAME_LENGTH:
            failures.append(f"Custom policy name '{name}' is too long once prefixed with the role name")
    if not isinstance(config.role_description, str):
        failures.append(f"role_description must be a string, got {type(config.role_description).__name__}")
    elif len(config.role_description) > constants.MAX_DESCRIPTION_LENGTH:
        failures.append(f"role_description exceeds {constants.MAX_DESCRIPTION_LENGTH} characters")
    if len(config.tags) > constants.MAX_TAGS:
        failures.append(f"At most {constants.MAX_TAGS} tags are allowed, got {len(config.tags)}")
    attachment_count = len(config.custom_policies) + len(config.managed_policy_arns)
    if attachment_count > constants.MAX_MANAGED_POLICIES_PER_ROLE:
        failures.append(
            f"{attachment_count} policies requested; a role accepts at most "
            f"{constants.MAX_MANAGED_POLICIES_PER_ROLE}"
        )
    return failures


def validate_config(config: DesiredConfig) -> list[str]:
    """Returns every validation failure in check order. An empty list means valid."""
    failures = []
    failures += _check_repositories(config)
    failures += _check_policy_documents(config)
    failures += _check_managed_arns(config)
    failures += _check_session_duration(config)
    failures += _check_iam_limits(config)
    return failures


def ensure_valid(config: DesiredConfig) -> None:
    failures = validate_config(config)
    if failures:
        for failure in failures:
            logger.error(f"Validation failure: {failure}")
        raise ValidationError(failures)
    logger.debug(f"Configuration for role {config.role_name} is valid")

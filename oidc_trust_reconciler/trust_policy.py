import logging

from . import constants
from .models import ProviderReference

logger = logging.getLogger(__name__)


def subject_patterns(repositories) -> list[str]:
    """One StringLike pattern per repository; `:*` matches any ref, tag, PR or environment."""
    return [f"repo:{repo}:*" for repo in repositories]


def build_trust_policy(provider: ProviderReference, repositories) -> dict:
    """Generates the assume-role policy letting GitHub workflows of the given repositories assume the role."""
    patterns = subject_patterns(repositories)
    policy = {
        "Version": constants.POLICY_VERSION,
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {
                    "Federated": provider.arn
                },
                "Action": constants.ASSUME_ROLE_ACTION,
                "Condition": {
                    "StringEquals": {
                        f"{provider.url}:aud": constants.DEFAULT_AUDIENCE
                    },
                    "StringLike": {
                        f"{provider.url}:sub": patterns
                    }
                }
            }
        ]
    }
    logger.debug(f"Generated trust policy for OIDC provider ARN {provider.arn} covering {len(patterns)} repositories")
    return policy


def _normalize(value):
    """IAM may echo a one-element list as a scalar and reorder condition values."""
    if isinstance(value, dict):
        return {key: _normalize(item) for key, item in value.items()}
    if isinstance(value, list):
        items = [_normalize(item) for item in value]
        if len(items) == 1:
            return items[0]
        return sorted(items, key=repr)
    return value


def trust_policy_matches(current: dict | None, desired: dict) -> bool:
    if current is None:
        return False
    return _normalize(current) == _normalize(desired)

"""
OIDC Trust Reconciler Constants
Global configuration constants for the application
"""

# Default tags applied to every IAM resource the reconciler creates
DEFAULT_TAGS = {
    "ManagedBy": "OIDC-Trust-Reconciler",
    "Purpose": "OIDC-GitHub-Integration",
}

# OIDC Configuration
DEFAULT_AUDIENCE = "sts.amazonaws.com"
GITHUB_OIDC_PROVIDER_URL = "token.actions.githubusercontent.com"
GITHUB_OIDC_ISSUER_URL = f"https://{GITHUB_OIDC_PROVIDER_URL}"
GITHUB_OIDC_DISCOVERY_URL = f"{GITHUB_OIDC_ISSUER_URL}/.well-known/openid-configuration"
ASSUME_ROLE_ACTION = "sts:AssumeRoleWithWebIdentity"
POLICY_VERSION = "2012-10-17"

# AWS Resource Configuration
MIN_SESSION_DURATION = 900
MAX_SESSION_DURATION = 43200
DEFAULT_SESSION_DURATION = 3600
MAX_MANAGED_POLICIES_PER_ROLE = 20
MAX_POLICY_VERSIONS = 5
MAX_ROLE_NAME_LENGTH = 64
MAX_POLICY_NAME_LENGTH = 128
MAX_DESCRIPTION_LENGTH = 1000
MAX_TAGS = 50

# Custom policies live under this IAM path, one sub-path per role
CUSTOM_POLICY_PATH_ROOT = "/oidc-trust-reconciler/"

# Validation patterns
REPOSITORY_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._-]*/[A-Za-z0-9][A-Za-z0-9._-]*$"
POLICY_ARN_PATTERN = r"^arn:aws:iam::(aws|\d{12}):policy/"
ROLE_NAME_PATTERN = r"^[\w+=,.@-]{1,64}$"
POLICY_NAME_PATTERN = r"^[\w+=,.@-]+$"

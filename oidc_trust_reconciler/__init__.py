"""
OIDC Trust Reconciler - keeps a GitHub Actions OIDC role topology in AWS IAM
in line with a declared configuration

Reconciles one OIDC identity provider, one IAM role with a repository-scoped
trust policy and its permission-policy attachments, and can render the same
topology as a Pulumi stack.
"""

__version__ = "1.0.0"

# Core components
from . import constants
from . import config_loader
from . import validator
from . import reconciler
from .errors import (ConfigError, DependencyOrderError, OidcTrustError, ProviderNotFound,
                     RemoteOperationError, ValidationError)
from .models import DesiredConfig, ProviderReference, RunOutputs
from .reconciler import Reconciler

__all__ = [
    "constants",
    "config_loader",
    "validator",
    "reconciler",
    "Reconciler",
    "DesiredConfig",
    "ProviderReference",
    "RunOutputs",
    "OidcTrustError",
    "ConfigError",
    "ValidationError",
    "ProviderNotFound",
    "RemoteOperationError",
    "DependencyOrderError",
]

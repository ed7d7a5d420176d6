"""
Value types shared by the reconciler stages.

Everything here is immutable once built; a run reads one RemoteSnapshot,
derives operations from it and never mutates the records it holds.
"""

from dataclasses import dataclass, field

from . import constants


def _ordered_unique(values) -> tuple:
    """A single string counts as one value. Entries need not be hashable."""
    if isinstance(values, str):
        values = [values]
    unique = []
    for value in values:
        if value not in unique:
            unique.append(value)
    return tuple(unique)


@dataclass(frozen=True)
class DesiredConfig:
    """The desired state of one federated role topology."""

    role_name: str
    github_repositories: tuple[str, ...]
    role_description: str = ""
    max_session_duration: int = constants.DEFAULT_SESSION_DURATION
    custom_policies: dict[str, str] = field(default_factory=dict)
    managed_policy_arns: tuple[str, ...] = ()
    create_oidc_provider: bool = True
    tags: dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        # Ordered sets: keep first occurrence, drop repeats
        object.__setattr__(self, "github_repositories", _ordered_unique(self.github_repositories))
        object.__setattr__(self, "managed_policy_arns", _ordered_unique(self.managed_policy_arns))
        if self.role_description is None:
            object.__setattr__(self, "role_description", "")
        object.__setattr__(self, "custom_policies", dict(self.custom_policies))
        object.__setattr__(self, "tags", dict(self.tags))

    def resource_tags(self) -> dict[str, str]:
        """Merges default tags with the configured ones."""
        tags = constants.DEFAULT_TAGS.copy()
        tags.update(self.tags)
        tags["RoleName"] = self.role_name
        return tags

    def __str__(self):
        return (f"DesiredConfig(role_name={self.role_name}, repositories={len(self.github_repositories)}, "
                f"custom={len(self.custom_policies)}, managed={len(self.managed_policy_arns)})")


@dataclass(frozen=True)
class ProviderReference:
    """Resolved OIDC identity provider. `url` is the scheme-less host form IAM reports."""

    arn: str
    url: str
    created: bool = False


@dataclass(frozen=True)
class RoleRecord:
    name: str
    arn: str
    role_id: str
    trust_policy: dict
    max_session_duration: int
    description: str = ""


@dataclass(frozen=True)
class CustomPolicyRecord:
    """An owned permission policy. `name` is the config key, not the IAM policy name."""

    name: str
    arn: str
    document: str


@dataclass(frozen=True)
class RemoteSnapshot:
    """Remote state read once at the start of a run."""

    provider: ProviderReference | None = None
    role: RoleRecord | None = None
    attached_policy_arns: tuple[str, ...] = ()
    custom_policies: dict[str, CustomPolicyRecord] = field(default_factory=dict)

    def is_attached(self, policy_arn: str) -> bool:
        return policy_arn in self.attached_policy_arns


@dataclass(frozen=True)
class RunOutputs:
    """Post-apply view of the managed resources."""

    oidc_provider_arn: str | None
    oidc_provider_url: str | None
    role_name: str
    role_arn: str | None
    role_id: str | None
    policy_names: list[str]
    policy_arns: list[str]
    github_repositories: list[str]

    def to_dict(self) -> dict:
        return {
            "oidc_provider_arn": self.oidc_provider_arn,
            "oidc_provider_url": self.oidc_provider_url,
            "role_name": self.role_name,
            "role_arn": self.role_arn,
            "role_id": self.role_id,
            "policy_names": list(self.policy_names),
            "policy_arns": list(self.policy_arns),
            "github_repositories": list(self.github_repositories),
        }


def strip_scheme(url: str) -> str:
    """Returns the URL without its https:// scheme or trailing slash, as IAM stores provider URLs."""
    if url.startswith("https://"):
        url = url[len("https://"):]
    return url.rstrip("/")


def custom_policy_path(role_name: str) -> str:
    return f"{constants.CUSTOM_POLICY_PATH_ROOT}{role_name}/"


def custom_policy_name(role_name: str, name: str) -> str:
    return f"{role_name}-{name}"


def is_owned_policy_arn(policy_arn: str, role_name: str) -> bool:
    """True when the ARN points at a custom policy this tool created for the role."""
    return f":policy{custom_policy_path(role_name)}" in policy_arn


def owned_policy_key(policy_arn: str, role_name: str) -> str:
    """Maps an owned policy ARN back to its config key."""
    policy_name = policy_arn.rsplit("/", 1)[-1]
    prefix = f"{role_name}-"
    return policy_name[len(prefix):] if policy_name.startswith(prefix) else policy_name

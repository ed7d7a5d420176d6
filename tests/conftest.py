"""
Shared fixtures: an in-memory RemoteStore and a baseline DesiredConfig
"""

import copy
import json

import pytest

from oidc_trust_reconciler.errors import RemoteOperationError
from oidc_trust_reconciler.models import (CustomPolicyRecord, DesiredConfig, ProviderReference,
                                          RoleRecord, strip_scheme)
from oidc_trust_reconciler.remote_store import RemoteStore

ACCOUNT_ID = "123456789012"
THUMBPRINT = "6938fd4d98bab03faadb97b34396831e3780aea1"
READ_ONLY_ARN = "arn:aws:iam::aws:policy/ReadOnlyAccess"
S3_READ_ARN = "arn:aws:iam::aws:policy/AmazonS3ReadOnlyAccess"


class InMemoryRemoteStore(RemoteStore):
    """IAM stand-in keeping state in dicts and recording every mutating call."""

    def __init__(self):
        self.providers: dict[str, ProviderReference] = {}
        self.roles: dict[str, dict] = {}
        self.policies: dict[str, dict] = {}
        self.attachments: dict[str, list[str]] = {}
        self.calls: list[tuple] = []
        self.failures: dict[tuple, str] = {}

    def fail(self, method: str, target: str, code: str = "LimitExceeded") -> None:
        """Makes the next calls of `method` on `target` raise RemoteOperationError."""
        self.failures[(method, target)] = code

    def _record(self, method: str, target: str) -> None:
        self.calls.append((method, target))
        code = self.failures.get((method, target))
        if code:
            raise RemoteOperationError(method, f"injected failure for {target}", code=code)

    def find_oidc_provider(self, url):
        return self.providers.get(strip_scheme(url))

    def create_oidc_provider(self, url, client_ids, thumbprints, tags):
        host = strip_scheme(url)
        self._record("create_oidc_provider", host)
        reference = ProviderReference(arn=f"arn:aws:iam::{ACCOUNT_ID}:oidc-provider/{host}", url=host, created=True)
        self.providers[host] = ProviderReference(arn=reference.arn, url=host)
        return reference

    def get_role(self, role_name):
        role = self.roles.get(role_name)
        if role is None:
            return None
        return RoleRecord(name=role_name, arn=role["arn"], role_id=role["id"],
                          trust_policy=copy.deepcopy(role["trust_policy"]),
                          max_session_duration=role["max_session_duration"],
                          description=role["description"])

    def create_role(self, role_name, description, trust_policy, max_session_duration, tags):
        self._record("create_role", role_name)
        self.roles[role_name] = {
            "arn": f"arn:aws:iam::{ACCOUNT_ID}:role/{role_name}",
            "id": f"AROA{len(self.roles):016d}",
            "trust_policy": copy.deepcopy(trust_policy),
            "max_session_duration": max_session_duration,
            "description": description,
            "tags": dict(tags),
        }
        self.attachments[role_name] = []
        return self.get_role(role_name)

    def update_trust_policy(self, role_name, trust_policy):
        self._record("update_trust_policy", role_name)
        self.roles[role_name]["trust_policy"] = copy.deepcopy(trust_policy)

    def update_role(self, role_name, description, max_session_duration):
        self._record("update_role", role_name)
        self.roles[role_name]["description"] = description
        self.roles[role_name]["max_session_duration"] = max_session_duration

    def list_attached_policy_arns(self, role_name):
        return list(self.attachments.get(role_name, []))

    def list_owned_policies(self, path, name_prefix):
        records = []
        for arn, policy in self.policies.items():
            if policy["path"] != path:
                continue
            name = policy["name"]
            if name.startswith(name_prefix):
                name = name[len(name_prefix):]
            records.append(CustomPolicyRecord(name=name, arn=arn, document=policy["document"]))
        return records

    def create_policy(self, policy_name, path, document, description, tags):
        self._record("create_policy", policy_name)
        arn = f"arn:aws:iam::{ACCOUNT_ID}:policy{path}{policy_name}"
        if arn in self.policies:
            raise RemoteOperationError("create_policy", f"{policy_name} exists", code="EntityAlreadyExists")
        self.policies[arn] = {"name": policy_name, "path": path, "document": json.dumps(json.loads(document)),
                              "versions": 1}
        return arn

    def update_policy(self, policy_arn, document):
        self._record("update_policy", policy_arn)
        self.policies[policy_arn]["document"] = json.dumps(json.loads(document))
        self.policies[policy_arn]["versions"] += 1

    def delete_policy(self, policy_arn):
        self._record("delete_policy", policy_arn)
        if any(policy_arn in arns for arns in self.attachments.values()):
            raise RemoteOperationError("delete_policy", "policy still attached", code="DeleteConflict")
        return self.policies.pop(policy_arn, None) is not None

    def attach_policy(self, role_name, policy_arn):
        self._record("attach_policy", policy_arn)
        if role_name not in self.roles:
            raise RemoteOperationError("attach_policy", f"role {role_name} missing", code="NoSuchEntity")
        if policy_arn not in self.attachments[role_name]:
            self.attachments[role_name].append(policy_arn)

    def detach_policy(self, role_name, policy_arn):
        self._record("detach_policy", policy_arn)
        attached = self.attachments.get(role_name, [])
        if policy_arn not in attached:
            return False
        attached.remove(policy_arn)
        return True


@pytest.fixture
def store():
    return InMemoryRemoteStore()


@pytest.fixture
def fake_thumbprint():
    calls = []

    def fetch(url):
        calls.append(url)
        return THUMBPRINT

    fetch.calls = calls
    return fetch


def make_config(**overrides) -> DesiredConfig:
    values = {
        "role_name": "GitHubActionsDeploy",
        "role_description": "Deploys from GitHub Actions",
        "github_repositories": ("org/a", "org/b"),
    }
    values.update(overrides)
    return DesiredConfig(**values)


@pytest.fixture
def config():
    return make_config()

"""
Operations applied against the remote store.

Each operation carries a stable key and the keys of the operations it
depends on. The planners emit them already ordered; the executor checks
the dependency edges as it goes.
"""

import logging
from enum import Enum
from typing import Optional

from .errors import DependencyOrderError
from .models import (DesiredConfig, RoleRecord, custom_policy_name,
                     custom_policy_path)
from .remote_store import RemoteStore
from .trust_policy import trust_policy_matches

logger = logging.getLogger(__name__)


class OperationStatus(str, Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


class RunContext:
    """Values produced while applying, e.g. ARNs of policies created this run."""

    def __init__(self):
        self.policy_arns: dict[str, str] = {}
        self.role: Optional[RoleRecord] = None


class Operation:
    kind = "Operation"

    def __init__(self, target: str, depends_on=()):
        self.target = target
        self.depends_on = tuple(depends_on)

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.target}"

    @property
    def policy_ref(self) -> Optional[str]:
        """Identity of the policy this operation touches, if any."""
        return None

    def apply(self, store: RemoteStore, context: RunContext) -> bool:
        """Applies the operation. Returns False when the remote was already in the wanted state."""
        raise NotImplementedError

    def describe(self) -> str:
        return f"{self.kind} {self.target}"

    def to_dict(self) -> dict:
        return {"operation": self.kind, "target": self.target, "depends_on": list(self.depends_on)}

    def __repr__(self):
        return f"<{self.kind} {self.target}>"


class CreateRole(Operation):
    kind = "CreateRole"

    def __init__(self, role_name: str, description: str, trust_policy: dict,
                 max_session_duration: int, tags: dict):
        super().__init__(role_name)
        self.description = description
        self.trust_policy = trust_policy
        self.max_session_duration = max_session_duration
        self.tags = tags

    def apply(self, store, context):
        context.role = store.create_role(self.target, self.description, self.trust_policy,
                                         self.max_session_duration, self.tags)
        logger.info(f"Created IAM role: {context.role.arn}")
        return True


class UpdateTrustPolicy(Operation):
    kind = "UpdateTrustPolicy"

    def __init__(self, role_name: str, trust_policy: dict):
        super().__init__(role_name)
        self.trust_policy = trust_policy

    def apply(self, store, context):
        store.update_trust_policy(self.target, self.trust_policy)
        logger.info(f"Updated trust policy of role {self.target}")
        return True


class UpdateRole(Operation):
    kind = "UpdateRole"

    def __init__(self, role_name: str, description: str, max_session_duration: int, depends_on=()):
        super().__init__(role_name, depends_on)
        self.description = description
        self.max_session_duration = max_session_duration

    def apply(self, store, context):
        store.update_role(self.target, self.description, self.max_session_duration)
        logger.info(f"Updated role {self.target}: max session {self.max_session_duration}s")
        return True


class CreatePolicy(Operation):
    kind = "CreatePolicy"

    def __init__(self, role_name: str, name: str, document: str, tags: dict, depends_on=()):
        super().__init__(name, depends_on)
        self.role_name = role_name
        self.document = document
        self.tags = tags

    @property
    def policy_ref(self):
        return f"custom:{self.target}"

    def apply(self, store, context):
        arn = store.create_policy(
            custom_policy_name(self.role_name, self.target),
            custom_policy_path(self.role_name),
            self.document,
            f"Custom policy {self.target} for role {self.role_name}",
            self.tags,
        )
        context.policy_arns[self.target] = arn
        logger.info(f"Created custom policy {self.target}: {arn}")
        return True


class UpdatePolicy(Operation):
    kind = "UpdatePolicy"

    def __init__(self, name: str, policy_arn: str, document: str):
        super().__init__(name)
        self.policy_arn = policy_arn
        self.document = document

    @property
    def policy_ref(self):
        return f"custom:{self.target}"

    def apply(self, store, context):
        store.update_policy(self.policy_arn, self.document)
        logger.info(f"Published new version of custom policy {self.target}")
        return True


class DeletePolicy(Operation):
    kind = "DeletePolicy"

    def __init__(self, name: str, policy_arn: str, depends_on=()):
        super().__init__(name, depends_on)
        self.policy_arn = policy_arn

    @property
    def policy_ref(self):
        return f"custom:{self.target}"

    def apply(self, store, context):
        deleted = store.delete_policy(self.policy_arn)
        if deleted:
            logger.info(f"Deleted custom policy {self.target}")
        return deleted


class AttachPolicy(Operation):
    """Attaches a managed ARN, or a custom policy whose ARN may only be known at apply time."""

    kind = "AttachPolicy"

    def __init__(self, role_name: str, policy_arn: Optional[str] = None,
                 custom_name: Optional[str] = None, depends_on=()):
        super().__init__(f"custom:{custom_name}" if custom_name else policy_arn, depends_on)
        self.role_name = role_name
        self.policy_arn = policy_arn
        self.custom_name = custom_name

    @property
    def policy_ref(self):
        return self.target

    def apply(self, store, context):
        arn = self.policy_arn or context.policy_arns.get(self.custom_name)
        if arn is None:
            raise DependencyOrderError(f"{self.describe()} ran before its policy was created")
        store.attach_policy(self.role_name, arn)
        logger.info(f"Attached {arn} to role {self.role_name}")
        return True


class DetachPolicy(Operation):
    kind = "DetachPolicy"

    def __init__(self, role_name: str, policy_arn: str, custom_name: Optional[str] = None):
        super().__init__(f"custom:{custom_name}" if custom_name else policy_arn)
        self.role_name = role_name
        self.policy_arn = policy_arn
        self.custom_name = custom_name

    @property
    def policy_ref(self):
        return self.target

    def apply(self, store, context):
        detached = store.detach_policy(self.role_name, self.policy_arn)
        if detached:
            logger.info(f"Detached {self.policy_arn} from role {self.role_name}")
        return detached


def plan_role_operations(config: DesiredConfig, trust_policy: dict,
                         current: Optional[RoleRecord]) -> list[Operation]:
    """Create the role, or update its mutable fields in place. The name itself is immutable."""
    if current is None:
        return [CreateRole(config.role_name, config.role_description, trust_policy,
                           config.max_session_duration, config.resource_tags())]

    operations = []
    if not trust_policy_matches(current.trust_policy, trust_policy):
        operations.append(UpdateTrustPolicy(config.role_name, trust_policy))
    if (current.max_session_duration != config.max_session_duration
            or (current.description or "") != config.role_description):
        # Ordered after the trust update but independent of its outcome
        operations.append(UpdateRole(config.role_name, config.role_description,
                                     config.max_session_duration))
    return operations

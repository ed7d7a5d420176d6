"""
Attachment Set Reconciler

Diffs the desired custom and managed policies against the snapshot and emits
the operations that move the role's attachment set to the desired one.
Removals come first: every detach and delete is ordered before any create,
update or attach, and operations on a reused policy name depend on the
removals for that name.
"""

import json
import logging

from .models import RemoteSnapshot, is_owned_policy_arn, owned_policy_key
from .operations import (AttachPolicy, CreatePolicy, DeletePolicy, DetachPolicy,
                         Operation, UpdatePolicy)

logger = logging.getLogger(__name__)


def documents_match(current: str, desired: str) -> bool:
    """Compares policy documents by content, ignoring formatting."""
    try:
        return json.loads(current) == json.loads(desired)
    except ValueError:
        return current == desired


def _plan_removals(role_name: str, custom_policies: dict, managed_arns, snapshot: RemoteSnapshot) -> list[Operation]:
    operations = []
    for policy_arn in snapshot.attached_policy_arns:
        if is_owned_policy_arn(policy_arn, role_name):
            name = owned_policy_key(policy_arn, role_name)
            if name not in custom_policies:
                operations.append(DetachPolicy(role_name, policy_arn, custom_name=name))
        elif policy_arn not in managed_arns:
            operations.append(DetachPolicy(role_name, policy_arn))

    detach_keys = {op.policy_ref: op.key for op in operations}
    for name, record in snapshot.custom_policies.items():
        if name in custom_policies:
            continue
        detach_key = detach_keys.get(f"custom:{name}")
        operations.append(DeletePolicy(name, record.arn, depends_on=[detach_key] if detach_key else []))
    return operations


def _plan_additions(role_name: str, custom_policies: dict, managed_arns, snapshot: RemoteSnapshot,
                    tags: dict, role_dependencies: list[str]) -> list[Operation]:
    creates, updates, attaches = [], [], []
    for name, document in custom_policies.items():
        record = snapshot.custom_policies.get(name)
        if record is None:
            create = CreatePolicy(role_name, name, document, tags)
            creates.append(create)
            attaches.append(AttachPolicy(role_name, custom_name=name,
                                         depends_on=role_dependencies + [create.key]))
            continue
        if not documents_match(record.document, document):
            updates.append(UpdatePolicy(name, record.arn, document))
        if not snapshot.is_attached(record.arn):
            attaches.append(AttachPolicy(role_name, policy_arn=record.arn, depends_on=role_dependencies))

    for policy_arn in managed_arns:
        if not snapshot.is_attached(policy_arn):
            attaches.append(AttachPolicy(role_name, policy_arn=policy_arn, depends_on=role_dependencies))
    return creates + updates + attaches


def _add_name_barriers(removals: list[Operation], additions: list[Operation]) -> None:
    """Makes every addition wait for removals of the same policy."""
    removal_keys: dict[str, list[str]] = {}
    for op in removals:
        removal_keys.setdefault(op.policy_ref, []).append(op.key)
    for op in additions:
        barrier = [key for key in removal_keys.get(op.policy_ref, []) if key not in op.depends_on]
        if barrier:
            op.depends_on = op.depends_on + tuple(barrier)


def plan_attachment_operations(role_name: str, custom_policies: dict, managed_arns,
                               snapshot: RemoteSnapshot, tags: dict | None = None,
                               role_dependencies=()) -> list[Operation]:
    """
    Returns the ordered operation list for the role's policies.

    `role_dependencies` are keys of role operations (e.g. CreateRole) that
    attachments have to wait for.
    """
    managed_arns = list(dict.fromkeys(managed_arns))
    removals = _plan_removals(role_name, custom_policies, managed_arns, snapshot)
    additions = _plan_additions(role_name, custom_policies, managed_arns, snapshot,
                                tags or {}, list(role_dependencies))
    _add_name_barriers(removals, additions)

    operations = removals + additions
    logger.info(f"Planned {len(operations)} policy operation(s) for role {role_name} "
                f"({len(removals)} removal(s), {len(additions)} addition(s))")
    for op in operations:
        logger.debug(f"Planned: {op.describe()} depends_on={list(op.depends_on)}")
    return operations

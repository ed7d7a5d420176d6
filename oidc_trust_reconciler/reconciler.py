"""
Reconciler

Runs the stages in order against one remote snapshot:
validate -> snapshot -> resolve provider -> build trust policy ->
plan role and attachment operations -> apply -> read back outputs.
"""

import logging
from typing import Callable, Optional

from . import constants
from .attachments import plan_attachment_operations
from .certificates import leaf_thumbprint
from .executor import ApplyExecutor, ApplyReport
from .models import (DesiredConfig, ProviderReference, RemoteSnapshot, RunOutputs,
                     is_owned_policy_arn, owned_policy_key)
from .operations import CreateRole, Operation, plan_role_operations
from .provider_resolver import ProviderResolver
from .remote_store import RemoteStore
from .snapshot import fetch_snapshot
from .trust_policy import build_trust_policy
from .validator import ensure_valid

logger = logging.getLogger(__name__)


class ReconcilePlan:
    """Operations a run would apply, plus what happens to the OIDC provider."""

    def __init__(self, config: DesiredConfig, snapshot: RemoteSnapshot, provider: ProviderReference,
                 provider_action: str, trust_policy: dict, operations: list[Operation]):
        self.config = config
        self.snapshot = snapshot
        self.provider = provider
        self.provider_action = provider_action  # "create", "adopt" or "reuse"
        self.trust_policy = trust_policy
        self.operations = operations

    @property
    def is_empty(self) -> bool:
        return not self.operations and self.provider_action != "create"

    def to_dict(self) -> dict:
        return {
            "role_name": self.config.role_name,
            "provider_action": self.provider_action,
            "provider_arn": self.provider.arn,
            "operations": [op.to_dict() for op in self.operations],
        }


class ReconcileResult:
    def __init__(self, plan: ReconcilePlan, report: ApplyReport, outputs: RunOutputs):
        self.plan = plan
        self.report = report
        self.outputs = outputs

    @property
    def succeeded(self) -> bool:
        return self.report.succeeded

    def to_dict(self) -> dict:
        return {
            "status": "success" if self.succeeded else "failed",
            "provider_action": self.plan.provider_action,
            "report": self.report.to_dict(),
            "outputs": self.outputs.to_dict(),
        }


class Reconciler:
    """Moves the remote role topology to match a DesiredConfig."""

    def __init__(self, store: RemoteStore,
                 fetch_thumbprint: Callable[[str], str] = leaf_thumbprint,
                 issuer_url: str = constants.GITHUB_OIDC_ISSUER_URL):
        self.store = store
        self.fetch_thumbprint = fetch_thumbprint
        self.issuer_url = issuer_url

    def _resolver(self, config: DesiredConfig, snapshot: RemoteSnapshot) -> ProviderResolver:
        return ProviderResolver(self.store, snapshot, fetch_thumbprint=self.fetch_thumbprint,
                                issuer_url=self.issuer_url, tags=config.resource_tags())

    def _provider_action(self, config: DesiredConfig, snapshot: RemoteSnapshot) -> str:
        if not config.create_oidc_provider:
            return "reuse"
        return "adopt" if snapshot.provider else "create"

    def _plan_operations(self, config: DesiredConfig, snapshot: RemoteSnapshot,
                         provider: ProviderReference) -> tuple[dict, list[Operation]]:
        trust_policy = build_trust_policy(provider, config.github_repositories)
        role_ops = plan_role_operations(config, trust_policy, snapshot.role)
        role_dependencies = [op.key for op in role_ops if isinstance(op, CreateRole)]
        policy_ops = plan_attachment_operations(
            config.role_name,
            config.custom_policies,
            config.managed_policy_arns,
            snapshot,
            tags=config.resource_tags(),
            role_dependencies=role_dependencies,
        )
        return trust_policy, role_ops + policy_ops

    def plan(self, config: DesiredConfig) -> ReconcilePlan:
        """Computes the operations without changing anything remotely."""
        ensure_valid(config)
        snapshot = fetch_snapshot(self.store, config, self.issuer_url)
        resolver = self._resolver(config, snapshot)
        action = self._provider_action(config, snapshot)
        if resolver.would_create(config.create_oidc_provider):
            provider = resolver.pending_reference()
        else:
            provider = resolver.resolve(config.create_oidc_provider)
        trust_policy, operations = self._plan_operations(config, snapshot, provider)
        return ReconcilePlan(config, snapshot, provider, action, trust_policy, operations)

    def run(self, config: DesiredConfig) -> ReconcileResult:
        """Validates, plans and applies. Raises before any change on validation or provider errors."""
        logger.info(f"--- Reconciling OIDC trust for role: {config.role_name} ---")
        ensure_valid(config)
        snapshot = fetch_snapshot(self.store, config, self.issuer_url)
        action = self._provider_action(config, snapshot)
        provider = self._resolver(config, snapshot).resolve(config.create_oidc_provider)
        trust_policy, operations = self._plan_operations(config, snapshot, provider)
        plan = ReconcilePlan(config, snapshot, provider, action, trust_policy, operations)

        report = ApplyExecutor(self.store).apply(operations)
        outputs = self.collect_outputs(config, provider)
        if report.succeeded:
            logger.info(f"--- Role {config.role_name} is up to date ---")
        else:
            logger.error(f"--- Role {config.role_name} partially applied: "
                         f"{len(report.failed)} operation(s) failed ---")
        return ReconcileResult(plan, report, outputs)

    def collect_outputs(self, config: DesiredConfig, provider: Optional[ProviderReference]) -> RunOutputs:
        """Reads the role and its custom policies back after apply."""
        role = self.store.get_role(config.role_name)
        names, arns = [], []
        if role is not None:
            for policy_arn in self.store.list_attached_policy_arns(config.role_name):
                if is_owned_policy_arn(policy_arn, config.role_name):
                    names.append(owned_policy_key(policy_arn, config.role_name))
                    arns.append(policy_arn)
        return RunOutputs(
            oidc_provider_arn=provider.arn if provider else None,
            oidc_provider_url=provider.url if provider else None,
            role_name=role.name if role else config.role_name,
            role_arn=role.arn if role else None,
            role_id=role.role_id if role else None,
            policy_names=names,
            policy_arns=arns,
            github_repositories=list(config.github_repositories),
        )

    def status(self, config: DesiredConfig) -> RemoteSnapshot:
        """Read-only view of the remote state for a configuration."""
        return fetch_snapshot(self.store, config, self.issuer_url)

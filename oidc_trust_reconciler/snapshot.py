import logging

from . import constants
from .models import (DesiredConfig, RemoteSnapshot, custom_policy_name,
                     custom_policy_path)
from .remote_store import RemoteStore

logger = logging.getLogger(__name__)


def fetch_snapshot(store: RemoteStore, config: DesiredConfig,
                   issuer_url: str = constants.GITHUB_OIDC_PROVIDER_URL) -> RemoteSnapshot:
    """Reads everything the planning stages need in one pass."""
    logger.info(f"Reading remote state for role {config.role_name}...")
    provider = store.find_oidc_provider(issuer_url)
    role = store.get_role(config.role_name)
    attached = store.list_attached_policy_arns(config.role_name) if role else []
    owned = store.list_owned_policies(
        custom_policy_path(config.role_name),
        custom_policy_name(config.role_name, ""),
    )

    snapshot = RemoteSnapshot(
        provider=provider,
        role=role,
        attached_policy_arns=tuple(attached),
        custom_policies={record.name: record for record in owned},
    )
    logger.info(f"Snapshot: provider={'present' if provider else 'absent'}, "
                f"role={'present' if role else 'absent'}, {len(attached)} attached, "
                f"{len(owned)} owned custom policies")
    return snapshot

"""
Provider Resolver

Decides whether the run registers a new OIDC identity provider or reuses the
one already registered for the issuer, and normalizes both outcomes into a
single ProviderReference.
"""

import logging
from typing import Callable, Optional

from . import constants
from .certificates import leaf_thumbprint
from .errors import ProviderNotFound
from .models import ProviderReference, RemoteSnapshot, strip_scheme
from .remote_store import RemoteStore

logger = logging.getLogger(__name__)


class ProviderResolver:
    """Resolves the run's ProviderReference once and caches it."""

    def __init__(self, store: RemoteStore, snapshot: RemoteSnapshot,
                 fetch_thumbprint: Callable[[str], str] = leaf_thumbprint,
                 issuer_url: str = constants.GITHUB_OIDC_ISSUER_URL,
                 discovery_url: str = constants.GITHUB_OIDC_DISCOVERY_URL,
                 tags: Optional[dict] = None):
        self.store = store
        self.snapshot = snapshot
        self.fetch_thumbprint = fetch_thumbprint
        self.issuer_url = issuer_url
        self.discovery_url = discovery_url
        self.tags = tags if tags is not None else constants.DEFAULT_TAGS.copy()
        self._resolved: Optional[ProviderReference] = None

    def would_create(self, create_provider: bool) -> bool:
        """True when resolve(create_provider) would register a new provider."""
        return create_provider and self.snapshot.provider is None

    def pending_reference(self) -> ProviderReference:
        """Placeholder reference for plans in which the provider does not exist yet."""
        host = strip_scheme(self.issuer_url)
        return ProviderReference(arn=f"arn:aws:iam::<pending>:oidc-provider/{host}", url=host)

    def resolve(self, create_provider: bool) -> ProviderReference:
        if self._resolved is not None:
            return self._resolved

        existing = self.snapshot.provider
        if not create_provider:
            if existing is None:
                logger.error(f"Provider reuse requested but none is registered for {self.issuer_url}")
                raise ProviderNotFound(self.issuer_url)
            logger.info(f"Reusing existing OIDC provider: {existing.arn}")
            self._resolved = existing
        elif existing is not None:
            # Registered by an earlier run; IAM allows one provider per issuer URL
            logger.warning(f"OIDC provider already exists, adopting it: {existing.arn}")
            self._resolved = existing
        else:
            thumbprint = self.fetch_thumbprint(self.discovery_url)
            logger.info(f"Creating OIDC provider for {self.issuer_url}")
            self._resolved = self.store.create_oidc_provider(
                self.issuer_url,
                client_ids=[constants.DEFAULT_AUDIENCE],
                thumbprints=[thumbprint],
                tags=self.tags,
            )
        return self._resolved

"""Exception taxonomy for the reconciler."""


class OidcTrustError(Exception):
    """Base class for every error raised by this package."""
    pass


class ConfigError(OidcTrustError):
    """Custom exception for configuration loading errors."""
    pass


class ValidationError(OidcTrustError):
    """Desired configuration failed pre-flight validation. Nothing was applied."""

    def __init__(self, failures: list[str]):
        self.failures = list(failures)
        super().__init__(f"{len(self.failures)} validation failure(s): " + "; ".join(self.failures))


class ProviderNotFound(OidcTrustError):
    """Provider reuse was requested but no provider is registered for the issuer URL."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"No OIDC identity provider registered for '{url}'")


class RemoteOperationError(OidcTrustError):
    """A call against the remote store failed."""

    def __init__(self, action: str, message: str, code: str | None = None):
        self.action = action
        self.code = code
        self.message = message
        detail = f"{action} failed"
        if code:
            detail += f" ({code})"
        super().__init__(f"{detail}: {message}")


class DependencyOrderError(OidcTrustError):
    """An operation ran before one of its prerequisites. Indicates a planning defect."""
    pass

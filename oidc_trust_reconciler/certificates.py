"""
TLS certificate fetching for OIDC provider registration.

IAM pins an OIDC provider to the SHA-1 fingerprint of the issuer's
certificate; it is read from a live TLS handshake with the discovery host.
"""

import hashlib
import logging
import socket
import ssl
from urllib.parse import urlparse

from . import constants
from .errors import RemoteOperationError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


def fetch_leaf_certificate(url: str = constants.GITHUB_OIDC_DISCOVERY_URL,
                           timeout: float = DEFAULT_TIMEOUT) -> bytes:
    """Returns the DER-encoded leaf certificate presented by the server."""
    parsed = urlparse(url if "://" in url else f"https://{url}")
    host = parsed.hostname
    port = parsed.port or 443
    if not host:
        raise ValueError(f"Cannot determine host from URL: {url}")

    context = ssl.create_default_context()
    try:
        with socket.create_connection((host, port), timeout=timeout) as sock:
            with context.wrap_socket(sock, server_hostname=host) as tls:
                leaf = tls.getpeercert(binary_form=True)
    except (OSError, ssl.SSLError) as e:
        raise RemoteOperationError("FetchCertificate", f"{host}:{port}: {e}")

    if not leaf:
        raise RemoteOperationError("FetchCertificate", f"{host}:{port} presented no certificate")
    logger.debug(f"Fetched leaf certificate from {host}:{port}")
    return leaf


def sha1_fingerprint(der_certificate: bytes) -> str:
    return hashlib.sha1(der_certificate).hexdigest()


def leaf_thumbprint(url: str = constants.GITHUB_OIDC_DISCOVERY_URL) -> str:
    """Fingerprint of the leaf certificate served at `url`, lowercase hex."""
    thumbprint = sha1_fingerprint(fetch_leaf_certificate(url))
    logger.info(f"Resolved thumbprint {thumbprint} for {urlparse(url).hostname or url}")
    return thumbprint

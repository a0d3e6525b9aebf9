"""
Vault Client for the Merge Tool

Fetches document store credentials from HashiCorp Vault so operators never
pass database passwords on the command line.
"""

import os
import logging
from dataclasses import dataclass
from typing import Dict, Any, Optional

import hvac
from hvac.exceptions import VaultError, InvalidPath

logger = logging.getLogger(__name__)

STORE_CREDENTIAL_KEYS = ("host", "port", "database", "user", "password")


@dataclass
class HealthStatus:
    """
    Health of the Vault connection.

    Attributes:
        healthy: True if authenticated and unsealed
        authenticated: Whether the token is accepted
        sealed: Whether Vault is sealed
        error: Error message if the check failed
    """

    healthy: bool
    authenticated: bool
    sealed: bool
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.healthy


class VaultClient:
    """Reads secrets from a KV v2 mount."""

    def __init__(
        self,
        vault_url: Optional[str] = None,
        vault_token: Optional[str] = None,
        verify_ssl: bool = True,
        mount_point: str = "secret"
    ):
        """
        Initialize Vault client.

        Args:
            vault_url: Vault server URL (defaults to VAULT_ADDR env var)
            vault_token: Vault token (defaults to VAULT_TOKEN env var)
            verify_ssl: Whether to verify SSL certificates
            mount_point: KV secrets engine mount point

        Raises:
            ValueError: If URL or token is missing
            VaultError: If the client cannot authenticate
        """
        self.vault_url = vault_url or os.getenv("VAULT_ADDR")
        self.vault_token = vault_token or os.getenv("VAULT_TOKEN")
        self.mount_point = mount_point

        if not self.vault_url:
            raise ValueError("Vault URL must be provided via parameter or VAULT_ADDR environment variable")

        if not self.vault_token:
            raise ValueError("Vault token must be provided via parameter or VAULT_TOKEN environment variable")

        self.client = hvac.Client(url=self.vault_url, token=self.vault_token, verify=verify_ssl)

        if not self.client.is_authenticated():
            raise VaultError("Failed to authenticate with Vault")

        logger.info(f"Connected to Vault at {self.vault_url}")

    def get_secret(self, path: str) -> Dict[str, Any]:
        """
        Read a secret.

        Args:
            path: Secret path relative to the mount point

        Returns:
            Secret key/value data

        Raises:
            InvalidPath: If nothing is stored at path
            VaultError: If the read fails
        """
        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=path,
                mount_point=self.mount_point
            )
        except InvalidPath:
            logger.error(f"Secret not found at path: {path}")
            raise
        except VaultError:
            raise
        except Exception as e:
            logger.error(f"Failed to retrieve secret from {path}: {e}")
            raise VaultError(f"Secret retrieval failed: {e}") from e

        if not response or "data" not in response:
            raise InvalidPath(f"No data found at path: {path}")

        logger.debug(f"Retrieved secret from {path}")
        return response["data"].get("data", {})

    def get_store_credentials(self, path: str) -> Dict[str, Any]:
        """
        Read document store connection parameters.

        Only keys psycopg2.connect understands are returned; `username` is
        accepted as an alias for `user`.

        Args:
            path: Secret path, e.g. "forum-postgres"

        Returns:
            Connection keyword arguments
        """
        secret = dict(self.get_secret(path))
        if "username" in secret and "user" not in secret:
            secret["user"] = secret.pop("username")

        credentials = {k: secret[k] for k in STORE_CREDENTIAL_KEYS if k in secret}
        if "port" in credentials:
            credentials["port"] = int(credentials["port"])

        logger.info(f"Retrieved document store credentials from {path}")
        return credentials

    def health_check(self) -> HealthStatus:
        """Check whether Vault is reachable, authenticated and unsealed."""
        try:
            if not self.client.is_authenticated():
                logger.warning("Vault authentication check failed")
                return HealthStatus(healthy=False, authenticated=False, sealed=True, error="Not authenticated")

            health = self.client.sys.read_health_status(method="GET")
            sealed = health.get("sealed", True) if isinstance(health, dict) else True
            return HealthStatus(
                healthy=not sealed,
                authenticated=True,
                sealed=sealed,
                error="Vault is sealed" if sealed else None
            )

        except Exception as e:
            logger.error(f"Vault health check failed: {e}")
            return HealthStatus(healthy=False, authenticated=False, sealed=True, error=str(e))

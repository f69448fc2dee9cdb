"""
Secrets for the storefront auth service, read from HashiCorp Vault (KV v2).

Logs in with AppRole and refuses to start half-configured. Callers name a
secret relative to the service's own mount ('database'); the 'storefront/'
prefix is applied here so nothing outside it is reachable.
"""

import os
import logging
from typing import Dict

import hvac
from hvac.exceptions import InvalidPath, Unauthorized, Forbidden

logger = logging.getLogger(__name__)

_SECRET_PREFIX = "storefront"

_vault_client_instance: "VaultClient | None" = None
_secret_cache: Dict[str, str] = {}


def _require_env(*names: str) -> list[str]:
    values = [os.getenv(name) for name in names]
    missing = [name for name, value in zip(names, values) if not value]
    if missing:
        raise ValueError(f"Missing required environment variable(s): {', '.join(missing)}")
    return values


class VaultClient:
    """AppRole-authenticated handle on the storefront secret mount."""

    def __init__(self, vault_addr: str | None = None, vault_namespace: str | None = None):
        self.vault_addr = vault_addr or _require_env("VAULT_ADDR")[0]
        self.vault_namespace = vault_namespace or os.getenv("VAULT_NAMESPACE")
        role_id, secret_id = _require_env("VAULT_ROLE_ID", "VAULT_SECRET_ID")

        options = {"url": self.vault_addr}
        if self.vault_namespace:
            options["namespace"] = self.vault_namespace
        self.client = hvac.Client(**options)

        try:
            login = self.client.auth.approle.login(role_id=role_id, secret_id=secret_id)
        except Exception as e:
            logger.error(f"AppRole authentication failed against {self.vault_addr}: {e}")
            raise PermissionError(f"AppRole authentication failed: {e}")

        self.client.token = login["auth"]["client_token"]
        if not self.client.is_authenticated():
            raise PermissionError("Vault rejected the AppRole token")
        logger.info(f"Vault session established: {self.vault_addr}")

    def get_secret(self, path: str, field: str) -> str:
        """
        Read one field of a KV v2 secret under the storefront prefix.

        Raises:
            PermissionError: the path is missing or the role cannot read it.
            KeyError: the secret exists but lacks the field.
        """
        scoped = f"{_SECRET_PREFIX}/{path}"
        try:
            version = self.client.secrets.kv.v2.read_secret_version(
                path=scoped, raise_on_deleted_version=True
            )
        except InvalidPath:
            logger.error(f"No secret at {scoped}")
            raise PermissionError(f"Secret '{scoped}' not found in Vault")
        except (Unauthorized, Forbidden) as e:
            logger.error(f"Read of {scoped} denied: {e}")
            raise PermissionError(f"Access denied to secret '{scoped}': {e}")

        fields = version["data"]["data"]
        try:
            return fields[field]
        except KeyError:
            raise KeyError(
                f"Secret '{scoped}' has no field '{field}' (has: {', '.join(fields) or 'none'})"
            ) from None


def _shared_client() -> VaultClient:
    global _vault_client_instance
    if _vault_client_instance is None:
        _vault_client_instance = VaultClient()
    return _vault_client_instance


def reset_vault_cache() -> None:
    """Drop the shared client and every cached secret."""
    global _vault_client_instance
    _vault_client_instance = None
    _secret_cache.clear()


def get_database_url() -> str:
    """DATABASE_URL when set (local dev, CI); otherwise storefront/database:url."""
    override = os.getenv("DATABASE_URL")
    if override:
        return override

    key = "database:url"
    if key not in _secret_cache:
        _secret_cache[key] = _shared_client().get_secret("database", "url")
    return _secret_cache[key]

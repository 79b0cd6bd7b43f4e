"""
Vault access for ledger secrets.

The ledger reads two secrets, both under the 'careledger/' KV v2 mount path:

    careledger/database   url
    careledger/billing    currency, tax_rate_bps, payment_terms_days, timezone

Authentication is AppRole. Secrets are read once per process and cached.
"""

import os
import logging
from typing import Any, Dict

import hvac
from hvac.exceptions import Forbidden, InvalidPath, Unauthorized

logger = logging.getLogger(__name__)

_SECRET_PREFIX = "careledger"

# Fields of careledger/billing that map onto BillingConfig
BILLING_SETTING_FIELDS = ("currency", "tax_rate_bps", "payment_terms_days", "timezone")

_vault_client_instance: "VaultClient | None" = None
_secret_cache: Dict[str, Dict[str, Any]] = {}


class VaultError(PermissionError):
    """A ledger secret could not be read. The service cannot start without it."""


class VaultClient:
    """AppRole-authenticated reader for secrets under careledger/."""

    def __init__(
        self,
        vault_addr: str | None = None,
        vault_namespace: str | None = None,
        role_id: str | None = None,
        secret_id: str | None = None,
    ):
        self.vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        self.vault_namespace = vault_namespace or os.getenv("VAULT_NAMESPACE")
        role_id = role_id or os.getenv("VAULT_ROLE_ID")
        secret_id = secret_id or os.getenv("VAULT_SECRET_ID")

        if not self.vault_addr:
            raise ValueError("VAULT_ADDR environment variable is required")
        if not role_id or not secret_id:
            raise ValueError(
                "VAULT_ROLE_ID and VAULT_SECRET_ID environment variables are required"
            )

        if self.vault_namespace:
            self.client = hvac.Client(url=self.vault_addr, namespace=self.vault_namespace)
        else:
            self.client = hvac.Client(url=self.vault_addr)

        self._login(role_id, secret_id)
        logger.info(f"Vault client ready for {self.vault_addr}")

    def _login(self, role_id: str, secret_id: str) -> None:
        try:
            response = self.client.auth.approle.login(role_id=role_id, secret_id=secret_id)
        except (Unauthorized, Forbidden, InvalidPath) as e:
            logger.error(f"AppRole authentication failed: {e}")
            raise VaultError(f"AppRole authentication failed: {e}") from e

        self.client.token = response["auth"]["client_token"]
        if not self.client.is_authenticated():
            raise VaultError("AppRole authentication failed: token not accepted")

    def read_secret(self, path: str) -> Dict[str, Any]:
        """
        Read every field of careledger/<path>.

        Raises:
            VaultError: The secret does not exist or this role cannot read it
        """
        full_path = f"{_SECRET_PREFIX}/{path}"
        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=full_path, raise_on_deleted_version=True
            )
        except InvalidPath as e:
            logger.error(f"Secret path not found: {full_path}")
            raise VaultError(f"Secret path '{full_path}' not found in Vault") from e
        except (Unauthorized, Forbidden) as e:
            logger.error(f"Access denied to secret {full_path}: {e}")
            raise VaultError(f"Access denied to secret '{full_path}': {e}") from e

        return response["data"]["data"]

    def get_secret(self, path: str, field: str) -> str:
        """
        Read one field of careledger/<path>.

        Raises:
            VaultError: The secret is unreadable
            KeyError: The secret has no such field
        """
        data = self.read_secret(path)
        if field not in data:
            raise KeyError(
                f"Field '{field}' not found in secret '{_SECRET_PREFIX}/{path}'. "
                f"Available: {', '.join(sorted(data))}"
            )
        return data[field]


def _get_vault_client() -> VaultClient:
    global _vault_client_instance
    if _vault_client_instance is None:
        _vault_client_instance = VaultClient()
    return _vault_client_instance


def reset_vault_state() -> None:
    """Forget the shared client and every cached secret."""
    global _vault_client_instance
    _vault_client_instance = None
    _secret_cache.clear()


def _cached_secret(path: str) -> Dict[str, Any]:
    if path not in _secret_cache:
        _secret_cache[path] = _get_vault_client().read_secret(path)
    return _secret_cache[path]


def get_cached_secret(path: str, field: str) -> str:
    """Read careledger/<path> once per process and return one field."""
    data = _cached_secret(path)
    if field not in data:
        raise KeyError(f"Field '{field}' not found in secret '{_SECRET_PREFIX}/{path}'")
    return data[field]


def get_database_url() -> str:
    """PostgreSQL connection URL for the ledger database."""
    return get_cached_secret("database", "url")


def get_billing_settings() -> Dict[str, Any]:
    """
    Practice billing settings stored in careledger/billing.

    Only fields that are present are returned, so BillingConfig defaults
    apply to the rest.
    """
    data = _cached_secret("billing")
    return {field: data[field] for field in BILLING_SETTING_FIELDS if field in data}

"""Infrastructure the ledger talks to: Vault for secrets, PostgreSQL for storage."""

from clients.vault_client import (
    VaultClient,
    VaultError,
    get_billing_settings,
    get_database_url,
    reset_vault_state,
)
from clients.postgres_client import PostgresClient

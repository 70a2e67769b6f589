"""
HashiCorp Vault client for connection credentials

Connections in the configuration may name a `vault_path` instead of an inline
password. The secret at that path (KV v2 engine) must hold `username` and
`password`; any other keys are returned untouched.
"""

import logging
import os
import re
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

SAFE_PATH = re.compile(r'^[a-zA-Z0-9/_-]+$')


def to_kv2_path(secret_path: str) -> str:
    """
    Validate a secret path and insert the KV v2 `data/` segment after the mount.

    Raises:
        ValueError: If the path is empty, attempts traversal or has unsafe characters
    """
    if not secret_path or not isinstance(secret_path, str):
        raise ValueError("secret_path must be a non-empty string")

    if '..' in secret_path or secret_path.startswith('/'):
        raise ValueError(
            f"Invalid secret_path: {secret_path}. "
            "Path traversal attempts are not allowed."
        )

    if not SAFE_PATH.match(secret_path):
        raise ValueError(
            f"Invalid secret_path: {secret_path}. "
            "Only alphanumeric characters, slashes, underscores, and hyphens are allowed."
        )

    if "/data/" in secret_path:
        return secret_path

    mount, _, rest = secret_path.partition("/")
    return f"{mount}/data/{rest}" if rest else f"{mount}/data"


class VaultClient:
    """
    Minimal Vault KV v2 reader.
    """

    def __init__(
        self,
        vault_addr: Optional[str] = None,
        vault_token: Optional[str] = None,
        namespace: Optional[str] = None,
        timeout: float = 10.0,
    ):
        """
        Args:
            vault_addr: Vault server address (default: from VAULT_ADDR env var)
            vault_token: Vault authentication token (default: from VAULT_TOKEN env var)
            namespace: Vault namespace (optional, for Vault Enterprise)
            timeout: HTTP timeout in seconds

        Raises:
            ValueError: If vault_addr or vault_token are not provided
        """
        vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        vault_token = vault_token or os.getenv("VAULT_TOKEN")

        if not vault_addr:
            raise ValueError(
                "Vault address not provided. Set VAULT_ADDR environment variable "
                "or pass vault_addr parameter."
            )
        if not vault_token:
            raise ValueError(
                "Vault token not provided. Set VAULT_TOKEN environment variable "
                "or pass vault_token parameter."
            )

        self.vault_addr = vault_addr.rstrip("/")
        self.timeout = timeout
        self.headers = {
            "X-Vault-Token": vault_token,
            "Content-Type": "application/json",
        }
        if namespace:
            self.headers["X-Vault-Namespace"] = namespace

    def get_secret(self, secret_path: str) -> Dict[str, Any]:
        """
        Fetch the data of a KV v2 secret.

        Raises:
            ValueError: If the path is invalid, missing or empty
            requests.RequestException: If the Vault request fails
        """
        kv_path = to_kv2_path(secret_path)
        url = f"{self.vault_addr}/v1/{kv_path}"

        logger.debug(f"Fetching secret from: {url}")
        response = requests.get(url, headers=self.headers, timeout=self.timeout)

        if response.status_code == 404:
            raise ValueError(f"Secret not found at path: {secret_path}")
        response.raise_for_status()

        secret_data = response.json().get("data", {}).get("data", {})
        if not secret_data:
            raise ValueError(f"No data found in secret at path: {secret_path}")

        return secret_data

    def get_connection_credentials(self, secret_path: str) -> Dict[str, Any]:
        """
        Fetch the credentials for one configured connection.

        Returns:
            Secret data containing at least `username` and `password`

        Raises:
            ValueError: If either field is missing
        """
        secret_data = self.get_secret(secret_path)

        missing = [f for f in ("username", "password") if f not in secret_data]
        if missing:
            raise ValueError(
                f"Missing required fields in secret {secret_path}: {', '.join(missing)}"
            )

        logger.info(f"Fetched connection credentials from Vault path {secret_path}")
        return secret_data

    def health_check(self) -> bool:
        """
        Check if Vault is reachable and unsealed.

        200 (active), 429 (standby), 472 and 473 (replication/performance
        standby) count as healthy.
        """
        url = f"{self.vault_addr}/v1/sys/health"
        try:
            response = requests.get(url, timeout=5)
        except requests.RequestException as e:
            logger.error(f"Vault health check failed: {e}")
            return False
        return response.status_code in (200, 429, 472, 473)

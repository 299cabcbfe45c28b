"""Runtime configuration shared by the stores and the authority client."""
import argparse
import logging
import os
from dataclasses import dataclass
from typing import Optional
from typing import Union

from acme_vault import __version__
from acme_vault.errors import ConfigError
from acme_vault.keys import KeyType

logger = logging.getLogger(__name__)

LETSENCRYPT_DIRECTORY = "https://acme-v02.api.letsencrypt.org/directory"


@dataclass(frozen=True)
class Config:
    ca_dir_url: str
    vault_addr: str
    vault_token: str
    key_type: KeyType = KeyType.EC256
    user_agent: str = f"acme-vault/{__version__}"
    vault_mount: str = "secret"
    vault_root: str = "acme"
    vault_namespace: Optional[str] = None
    # Passed to requests as `verify` for authority requests
    ca_bundle: Union[bool, str] = True

    @staticmethod
    def from_args(args: argparse.Namespace) -> "Config":
        """Resolve the configuration from parsed CLI arguments, falling back
        to the usual Vault environment variables.

        Raises
        ------
        ConfigError
            When the directory URL, Vault address or Vault token is missing.
        """
        ca_dir_url = args.server or os.environ.get("ACME_DIRECTORY", LETSENCRYPT_DIRECTORY)
        vault_addr = args.vault_addr or os.environ.get("VAULT_ADDR", "")
        vault_token = os.environ.get("VAULT_TOKEN", "")

        if not vault_addr:
            raise ConfigError("No Vault address, pass --vault-addr or set VAULT_ADDR")
        if not vault_token:
            raise ConfigError("No Vault token, set VAULT_TOKEN")

        try:
            key_type = KeyType.parse(args.key_type)
        except ValueError as e:
            raise ConfigError(str(e), subject=args.key_type) from e

        config = Config(
            ca_dir_url=ca_dir_url,
            vault_addr=vault_addr.rstrip("/"),
            vault_token=vault_token,
            key_type=key_type,
            vault_mount=args.vault_mount,
            vault_root=args.vault_root,
            vault_namespace=os.environ.get("VAULT_NAMESPACE") or None,
            ca_bundle=args.ca_bundle or True,
        )
        logger.debug(f"config = {config.ca_dir_url} / {config.vault_addr}/{config.vault_mount}/{config.vault_root}")
        return config

"""Path addressable secret storage backed by the HashiCorp Vault KV v2 engine.

Paths handed to a backend are relative to the configured root, e.g.

    acme/private_key/hubert@hubert.com
     │       │              └── user identifier or domain
     │       └── entity type (account, private_key, certs, json)
     └── root ("vault_root" option)
"""
import logging
from abc import ABC
from abc import abstractmethod
from typing import Any
from typing import Optional

from requests import RequestException
from requests import Session

from acme_vault.config import Config
from acme_vault.errors import BackendError

logger = logging.getLogger(__name__)

ACCOUNT_SEGMENT = "account"
PRIVATE_KEY_SEGMENT = "private_key"
CERTS_SEGMENT = "certs"
METADATA_SEGMENT = "json"


class SecretBackend(ABC):
    root = ""

    def path(self, segment: str, identifier: str) -> str:
        return "/".join(p for p in (self.root, segment, identifier) if p)

    @abstractmethod
    def read(self, path: str) -> Optional[dict[str, Any]]:
        """Return the secret data stored at path, or None if nothing is there.

        Raises
        ------
        BackendError
            When the store could not be queried.
        """

    @abstractmethod
    def write(self, path: str, data: dict[str, Any]) -> None:
        """Replace the secret data at path in full.

        Raises
        ------
        BackendError
            When the store did not accept the write.
        """


class VaultClient(SecretBackend):
    def __init__(
        self,
        addr: str,
        token: str,
        mount: str = "secret",
        root: str = "acme",
        namespace: Optional[str] = None,
        timeout: float = 10.0,
    ):
        self.addr = addr.rstrip("/")
        self.mount = mount.strip("/")
        self.root = root.strip("/")
        self.timeout = timeout
        self.session = Session()
        self.session.headers.update({"X-Vault-Token": token})
        if namespace:
            self.session.headers.update({"X-Vault-Namespace": namespace})

    @staticmethod
    def from_config(config: Config) -> "VaultClient":
        return VaultClient(
            addr=config.vault_addr,
            token=config.vault_token,
            mount=config.vault_mount,
            root=config.vault_root,
            namespace=config.vault_namespace,
        )

    def _url(self, path: str) -> str:
        return f"{self.addr}/v1/{self.mount}/data/{path}"

    def read(self, path: str) -> Optional[dict[str, Any]]:
        logger.debug(f"vault: GET {path}")
        try:
            response = self.session.get(self._url(path), timeout=self.timeout)
        except RequestException as e:
            raise BackendError(f"vault: could not read {path}: {e}", subject=path) from e

        # KV v2 answers 404 both for unknown paths and for deleted versions
        if response.status_code == 404:
            return None

        if not response.ok:
            raise BackendError(
                f"vault: reading {path} failed with {response.status_code}: {response.text}",
                subject=path,
            )

        try:
            return response.json()["data"]["data"]
        except (ValueError, KeyError, TypeError) as e:
            raise BackendError(f"vault: malformed response for {path}", subject=path) from e

    def write(self, path: str, data: dict[str, Any]) -> None:
        logger.debug(f"vault: POST {path}")
        try:
            response = self.session.post(
                self._url(path), json={"data": data}, timeout=self.timeout
            )
        except RequestException as e:
            raise BackendError(f"vault: could not write {path}: {e}", subject=path) from e

        if not response.ok:
            raise BackendError(
                f"vault: writing {path} failed with {response.status_code}: {response.text}",
                subject=path,
            )

from dataclasses import dataclass
from typing import Any

from acme_vault.acme_client.account import NewAccountEndpoint
from acme_vault.acme_client.endpoint import Endpoint


@dataclass
class NewNonceEndpoint(Endpoint):
    method: str = "HEAD"
    use_jwk: bool = False
    use_kid: bool = False

    def __init__(self, url: str):
        self.url = url


@dataclass
class Directory:
    # RFC Section 7.1.1, only the resources needed to look up and register
    # accounts.
    new_nonce_endpoint: NewNonceEndpoint
    new_account_endpoint: NewAccountEndpoint

    metadata: dict[str, Any]

    def __init__(self, dir_dict: dict[str, Any]):
        self.new_nonce_endpoint = NewNonceEndpoint(dir_dict["newNonce"])
        self.new_account_endpoint = NewAccountEndpoint(dir_dict["newAccount"])
        self.metadata = dir_dict.get("meta", {})

    @property
    def terms_of_service(self) -> str:
        return self.metadata.get("termsOfService", "")


@dataclass
class DirectoryEndpoint(Endpoint):
    url: str
    method: str = "GET"
    use_jwk: bool = False
    use_kid: bool = False

    def __init__(self, url: str):
        self.url = url

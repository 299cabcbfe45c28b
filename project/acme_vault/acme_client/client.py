import json
import logging
from typing import Optional
from typing import Union

from requests import Response

from acme_vault.acme_client.account import AccountBody
from acme_vault.acme_client.account import AccountStub
from acme_vault.acme_client.account import Registration
from acme_vault.acme_client.directory import Directory
from acme_vault.acme_client.directory import DirectoryEndpoint
from acme_vault.keys import PrivateKey

logger = logging.getLogger(__name__)


class ACMEError(Exception):
    """The ACME server answered with an unexpected status code or body."""

    def __init__(self, message: str, response: Optional[Response] = None):
        if response is not None:
            message = f"{message}: {response.status_code} {response.text}"
        super().__init__(message)
        self.response = response


class ACMEClient:
    """A minimal client bound to one account key, able to look up and register
    the account belonging to that key."""

    last_replay_nonce: str
    directory: Directory
    private_key: PrivateKey

    def __init__(
        self,
        dir_url: str,
        private_key: PrivateKey,
        user_agent: str,
        verify: Union[bool, str] = True,
    ):
        """On initialisation, retrieve the Directory and a first nonce.

        Parameters
        ----------
        dir_url : str
            The URL to the ACME server directory.
        private_key : PrivateKey
            The account key. Every request is signed with it.
        user_agent : str
            Sent as the User-Agent header of every request.
        verify : bool or str
            TLS verification for requests, or the path to a CA bundle.
        """
        self.private_key = private_key
        self.user_agent = user_agent
        self.verify = verify

        self.directory = self._retrieve_directory(dir_url)
        self.last_replay_nonce = self._retrieve_new_nonce()

    def resolve_account_by_key(self) -> Registration:
        """Ask the server for the account already bound to our key, without
        creating one (RFC Section 7.3.1).

        Raises
        ------
        ACMEError
            When the server knows no account for the key.
        """
        logger.info("Trying to resolve account by key")
        response = self._post_new_account(AccountStub(only_return_existing=True))

        # RFC Section 7.3.1: 200 with the existing account, an existing but
        # unknown key yields accountDoesNotExist
        if response.status_code != 200:
            raise ACMEError("Server could not resolve an account for the key", response)

        return Registration(
            uri=response.headers["Location"],
            body=AccountBody.from_json(response.json()),
        )

    def register(self, contact: list[str], tos_agreed: bool) -> Registration:
        """Create an account for our key, or return the one that already
        exists for it.

        Parameters
        ----------
        contact : list[str]
            Contact URLs, e.g. ["mailto:hubert@hubert.com"].
        tos_agreed : bool
            Whether the user agreed to the terms of service.
        """
        response = self._post_new_account(
            AccountStub(contact=contact, tos_agreed=tos_agreed, only_return_existing=False)
        )

        # 201 on creation, 200 when the key already had an account
        if response.status_code not in (200, 201):
            raise ACMEError("Server failed to register the account", response)

        return Registration(
            uri=response.headers["Location"],
            body=AccountBody.from_json(response.json()),
        )

    def _post_new_account(self, stub: AccountStub) -> Response:
        response = self.directory.new_account_endpoint.retrieve(
            key=self.private_key,
            user_agent=self.user_agent,
            payload=json.dumps(stub.to_json()),
            nonce=self.last_replay_nonce,
            verify=self.verify,
        )

        # Use replay nonce for future requests
        if "Replay-Nonce" in response.headers:
            self.last_replay_nonce = response.headers["Replay-Nonce"]

        return response

    def _retrieve_directory(self, dir_url: str) -> Directory:
        """Retrieve the directory from the specified ACME server directory URL."""
        response = DirectoryEndpoint(dir_url).retrieve(
            key=self.private_key, user_agent=self.user_agent, verify=self.verify
        )
        if response.status_code != 200:
            raise ACMEError(f"Could not retrieve directory {dir_url}", response)
        return Directory(response.json())

    def _retrieve_new_nonce(self) -> str:
        """Retrieve a new nonce from the newNonce endpoint in the directory."""
        response = self.directory.new_nonce_endpoint.retrieve(
            key=self.private_key, user_agent=self.user_agent, verify=self.verify
        )
        if "Replay-Nonce" not in response.headers:
            raise ACMEError("Server did not return a Replay-Nonce", response)
        return response.headers["Replay-Nonce"]

import json
import logging
from dataclasses import dataclass
from typing import Any
from typing import Callable
from typing import Optional

from requests import RequestException

from acme_vault.acme_client.account import Registration
from acme_vault.acme_client.client import ACMEClient
from acme_vault.acme_client.client import ACMEError
from acme_vault.config import Config
from acme_vault.errors import AccountDecodeError
from acme_vault.errors import BackendError
from acme_vault.errors import DecodeError
from acme_vault.errors import NotFoundError
from acme_vault.errors import RegistrationError
from acme_vault.keys import KeyType
from acme_vault.keys import PrivateKey
from acme_vault.keys import generate_private_key
from acme_vault.keys import load_private_key
from acme_vault.keys import pem_encode_private_key
from acme_vault.vault import ACCOUNT_SEGMENT
from acme_vault.vault import PRIVATE_KEY_SEGMENT
from acme_vault.vault import SecretBackend

logger = logging.getLogger(__name__)

RegistrationResolver = Callable[[PrivateKey], Registration]


@dataclass
class Account:
    email: str
    registration: Optional[Registration] = None
    # Kept out of the serialized record, it lives under its own path
    key: Optional[PrivateKey] = None

    @property
    def usable(self) -> bool:
        return (
            self.key is not None
            and self.registration is not None
            and bool(self.registration.body.status)
        )

    @staticmethod
    def from_json(account_json: dict[str, Any]):
        registration = account_json.get("registration")
        return Account(
            email=account_json["email"],
            registration=Registration.from_json(registration) if registration else None,
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "email": self.email,
            "registration": self.registration.to_json() if self.registration else None,
        }


def try_recover_registration(config: Config, private_key: PrivateKey) -> Registration:
    """Look up the account bound to a key we have locally but whose account
    record is gone or unusable. The authority knows nothing about our user
    identifiers, so the key is the only handle.

    Raises
    ------
    RegistrationError
        When the authority can't be reached or knows no account for the key.
    """
    try:
        client = ACMEClient(
            config.ca_dir_url,
            private_key,
            user_agent=config.user_agent,
            verify=config.ca_bundle,
        )
        return client.resolve_account_by_key()
    except (ACMEError, RequestException, KeyError, ValueError) as e:
        raise RegistrationError(f"Could not resolve account by key: {e}") from e


class AccountsStorage:
    """Account records and account keys kept in the secret store.

    Layout:

        <root>/account/<user id>      {"data": <account JSON>}
        <root>/private_key/<user id>  {"data": <PEM private key>}

    Parameters
    ----------
    config : Config
        Authority directory and user agent, used by registration recovery.
    backend : SecretBackend
        The secret store to read from and write to.
    resolver : callable, optional
        Resolves a Registration from a private key. Defaults to asking the
        configured authority.
    """

    def __init__(
        self,
        config: Config,
        backend: SecretBackend,
        resolver: Optional[RegistrationResolver] = None,
    ):
        self.config = config
        self.backend = backend
        self.resolver = resolver or (lambda key: try_recover_registration(config, key))

    def _account_path(self, user_id: str) -> str:
        return self.backend.path(ACCOUNT_SEGMENT, user_id)

    def _key_path(self, user_id: str) -> str:
        return self.backend.path(PRIVATE_KEY_SEGMENT, user_id)

    def exists(self, user_id: str) -> bool:
        try:
            return self.backend.read(self._account_path(user_id)) is not None
        except BackendError as e:
            logger.warning(f"Could not probe account {user_id}: {e}")
            return False

    def save(self, account: Account) -> None:
        """Write the account record, replacing any previous version.

        Raises
        ------
        BackendError
            When the store rejects the write.
        """
        self.backend.write(
            self._account_path(account.email),
            {"data": json.dumps(account.to_json(), indent="\t")},
        )

    def load_account(self, user_id: str, private_key: PrivateKey) -> Account:
        """Load the account for user_id and attach private_key to it.

        If the stored registration is missing or has no status, it is
        recovered from the authority and the account is saved again, so the
        returned account is always usable.

        Raises
        ------
        NotFoundError
            When no account record exists for user_id.
        AccountDecodeError
            When the record can't be decoded.
        RegistrationError
            When the registration had to be recovered and that failed.
        BackendError
            When reading or re-saving the record fails.
        """
        path = self._account_path(user_id)
        record = self.backend.read(path)
        if record is None:
            raise NotFoundError(f"No account found for {user_id}", subject=user_id)

        try:
            account = Account.from_json(json.loads(record["data"]))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise AccountDecodeError(
                f"Could not parse account record for {user_id}: {e}", subject=user_id
            ) from e

        account.key = private_key

        if account.registration is None or not account.registration.body.status:
            logger.info(f"Registration for {user_id} is missing, resolving it by key")
            try:
                account.registration = self.resolver(private_key)
            except RegistrationError as e:
                e.subject = user_id
                raise
            self.save(account)

        return account

    def get_private_key(self, user_id: str, key_type: KeyType) -> PrivateKey:
        """Return the account key for user_id, generating and storing one of
        key_type when none exists yet. A generated key is only returned once
        it has been written.

        Raises
        ------
        BackendError
            When the key can't be read or a new key can't be written.
        KeyDecodeError, UnknownKeyTypeError
            When the stored key can't be decoded.
        """
        path = self._key_path(user_id)
        record = self.backend.read(path)

        if record is None:
            logger.info(f"No key found for account {user_id}. Generating a {key_type.name} key.")
            private_key = generate_private_key(key_type)
            self.backend.write(
                path, {"data": pem_encode_private_key(private_key).decode("ASCII")}
            )
            return private_key

        try:
            return load_private_key(str(record["data"]).encode("UTF-8"))
        except KeyError as e:
            raise BackendError(f"Key record for {user_id} has no data", subject=user_id) from e
        except DecodeError as e:
            e.subject = user_id
            raise

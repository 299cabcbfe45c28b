# -*- coding: utf-8 -*-
"""This module contains the CLI functionality, and the flows invoking the
various other components of this project.

The main components of this project are:
    acme_vault.vault - The Vault KV v2 secret backend
    acme_vault.storage - The account and certificate stores
    acme_vault.acme_client - The ACME client used to look up and register accounts
    acme_vault.http_challenge_server - The HTTP server to respond to http-01
"""
import argparse
import logging
import os
import sys
import threading

from acme_vault import __version__
from acme_vault.acme_client.client import ACMEClient
from acme_vault.acme_client.client import ACMEError
from acme_vault.config import Config
from acme_vault.errors import AcmeVaultError
from acme_vault.http_challenge_server import ProviderServer
from acme_vault.http_challenge_server import challenge_path
from acme_vault.storage import Account
from acme_vault.storage import AccountsStorage
from acme_vault.storage import CertificatesStorage
from acme_vault.storage.certificates import CERTIFICATE_EXT
from acme_vault.storage.certificates import needs_renewal
from acme_vault.vault import VaultClient

logger = logging.getLogger(__name__)

parser = argparse.ArgumentParser(
    prog="acme-vault",
    description=f"""
Keeps ACME accounts and certificates in Vault and answers http-01 challenges.
Version: {__version__}
Path: {os.path.abspath(os.path.dirname(__file__))}
""",
    formatter_class=argparse.RawTextHelpFormatter,
)
parser.add_argument(
    "--server",
    help="Directory URL of the ACME server. Defaults to $ACME_DIRECTORY or Let's Encrypt production.",
)
parser.add_argument(
    "--vault-addr",
    help="Address of the Vault server. Defaults to $VAULT_ADDR. The token is read from $VAULT_TOKEN.",
)
parser.add_argument(
    "--vault-mount",
    default="secret",
    help="Mount path of the KV v2 secrets engine",
)
parser.add_argument(
    "--vault-root",
    default="acme",
    help="Path below the mount under which accounts and certificates are kept",
)
parser.add_argument(
    "--key-type",
    default="EC256",
    help="Account key type to generate: EC256, EC384, RSA2048, RSA3072, RSA4096 or RSA8192",
)
parser.add_argument(
    "--ca-bundle",
    help="CA bundle used to verify the ACME server's TLS certificate",
)
parser.add_argument(
    "--log",
    default="info",
    choices=["debug", "info", "warning", "error", "critical"],
    help="The logging level to assign to the default standard output handler",
)
subparsers = parser.add_subparsers(dest="command", required=True)

account_parser = subparsers.add_parser(
    "account", help="Load the account for an email address, registering it if needed"
)
account_parser.add_argument("--email", required=True, help="The account's user identifier")
account_parser.add_argument(
    "--accept-tos",
    action="store_true",
    help="Agree to the ACME server's terms of service when registering",
)

show_parser = subparsers.add_parser("show", help="Show the stored certificate chain of a domain")
show_parser.add_argument("--domain", required=True)
show_parser.add_argument(
    "--days",
    type=int,
    default=30,
    help="Report a renewal as due when the certificate expires within this many days",
)

challenge_parser = subparsers.add_parser(
    "serve-challenge", help="Answer one http-01 challenge until interrupted"
)
challenge_parser.add_argument("--domain", required=True)
challenge_parser.add_argument("--token", required=True)
challenge_parser.add_argument("--key-auth", required=True)
challenge_parser.add_argument("--iface", default="", help="Interface to listen on")
challenge_parser.add_argument("--port", default="80", help="Port to listen on")


def run_account(config: Config, args: argparse.Namespace) -> None:
    accounts = AccountsStorage(config, VaultClient.from_config(config))
    private_key = accounts.get_private_key(args.email, config.key_type)

    if accounts.exists(args.email):
        account = accounts.load_account(args.email, private_key)
    else:
        logger.info(f"No account found for {args.email}, registering one")
        client = ACMEClient(
            config.ca_dir_url, private_key, user_agent=config.user_agent, verify=config.ca_bundle
        )
        if not args.accept_tos:
            raise ACMEError(
                f"Registering requires agreeing to {client.directory.terms_of_service}, pass --accept-tos"
            )
        registration = client.register(contact=[f"mailto:{args.email}"], tos_agreed=True)
        account = Account(email=args.email, registration=registration, key=private_key)
        accounts.save(account)

    print(f"{account.email}: {account.registration.uri} ({account.registration.body.status})")


def run_show(config: Config, args: argparse.Namespace) -> None:
    certificates = CertificatesStorage(VaultClient.from_config(config))
    chain = certificates.read_certificate(args.domain, CERTIFICATE_EXT)

    for certificate in chain:
        print(f"subject:   {certificate.subject.rfc4514_string()}")
        print(f"issuer:    {certificate.issuer.rfc4514_string()}")
        print(f"not after: {certificate.not_valid_after_utc.isoformat()}")
        print()

    if needs_renewal(chain[0], args.domain, args.days):
        print(f"{args.domain}: renewal due")
    else:
        print(f"{args.domain}: no renewal needed")


def run_serve_challenge(args: argparse.Namespace) -> None:
    server = ProviderServer(args.iface, args.port)
    server.present(args.domain, args.token, args.key_auth).wait()
    logger.info(f"[{args.domain}] Serving {challenge_path(args.token)} on {server.get_address()}")

    try:
        # Block until interrupted
        threading.Event().wait()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    finally:
        server.clean_up(args.domain, args.token, args.key_auth)


def main() -> None:
    args = parser.parse_args()

    # Change the root log level
    logging.getLogger().setLevel(args.log.upper())
    logger.debug(f"Log level set to {args.log.upper()}")

    try:
        if args.command == "serve-challenge":
            run_serve_challenge(args)
        else:
            config = Config.from_args(args)
            if args.command == "account":
                run_account(config, args)
            elif args.command == "show":
                run_show(config, args)
    except (AcmeVaultError, ACMEError) as e:
        logger.error(str(e))
        sys.exit(1)

    sys.exit(0)

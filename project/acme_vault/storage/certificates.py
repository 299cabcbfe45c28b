import json
import logging
from dataclasses import dataclass
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from typing import Any

from cryptography import x509

from acme_vault.errors import BackendError
from acme_vault.errors import CertificateDecodeError
from acme_vault.errors import NotFoundError
from acme_vault.errors import UnsupportedFileKindError
from acme_vault.keys import parse_pem_bundle
from acme_vault.vault import CERTS_SEGMENT
from acme_vault.vault import METADATA_SEGMENT
from acme_vault.vault import SecretBackend

logger = logging.getLogger(__name__)

CERTIFICATE_EXT = ".crt"
PRIVATE_KEY_EXT = ".key"
ISSUER_EXT = ".issuer.crt"


@dataclass
class CertificateResource:
    domain: str
    cert_url: str = ""
    cert_stable_url: str = ""
    private_key: bytes = b""
    certificate: bytes = b""
    issuer_certificate: bytes = b""
    csr: bytes = b""

    @staticmethod
    def from_json(resource_json: dict[str, Any]):
        return CertificateResource(
            domain=resource_json["domain"],
            cert_url=resource_json.get("certUrl", ""),
            cert_stable_url=resource_json.get("certStableUrl", ""),
            private_key=resource_json.get("privateKey", "").encode("UTF-8"),
            certificate=resource_json.get("certificate", "").encode("UTF-8"),
            issuer_certificate=resource_json.get("issuerCertificate", "").encode("UTF-8"),
            csr=resource_json.get("csr", "").encode("UTF-8"),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "certUrl": self.cert_url,
            "certStableUrl": self.cert_stable_url,
            "privateKey": self.private_key.decode("UTF-8"),
            "certificate": self.certificate.decode("UTF-8"),
            "issuerCertificate": self.issuer_certificate.decode("UTF-8"),
            "csr": self.csr.decode("UTF-8"),
        }


class CertificatesStorage:
    """Issued certificates kept in the secret store, one domain per entry.

    The certificate, private key and issuer are stored apart from the
    metadata, as web servers would not be able to work with a combined
    document:

        <root>/certs/<domain>  {"cert": <PEM>, "key": <PEM>, "issuer": <PEM>}
        <root>/json/<domain>   {"data": <resource JSON>}
    """

    def __init__(self, backend: SecretBackend):
        self.backend = backend

    def save(self, resource: CertificateResource) -> None:
        """Store the resource, overwriting both entries for its domain.

        Raises
        ------
        BackendError
            When either entry can't be written. The message names the entry.
        """
        domain = resource.domain

        try:
            self.backend.write(
                self.backend.path(CERTS_SEGMENT, domain),
                {
                    "cert": resource.certificate.decode("UTF-8"),
                    "key": resource.private_key.decode("UTF-8"),
                    "issuer": resource.issuer_certificate.decode("UTF-8"),
                },
            )
        except BackendError as e:
            raise BackendError(
                f"Unable to save certificate for domain {domain}: {e}", subject=domain
            ) from e

        try:
            self.backend.write(
                self.backend.path(METADATA_SEGMENT, domain),
                {"data": json.dumps(resource.to_json(), indent="\t")},
            )
        except BackendError as e:
            raise BackendError(
                f"Unable to save certificate resource for domain {domain}: {e}",
                subject=domain,
            ) from e

        logger.info(f"[{domain}] Saved certificate")

    def read(self, domain: str) -> CertificateResource:
        """Read back the resource saved for domain.

        Raises
        ------
        NotFoundError
            When nothing was saved for domain.
        CertificateDecodeError
            When the metadata can't be decoded.
        BackendError
            When the store can't be read.
        """
        record = self.backend.read(self.backend.path(METADATA_SEGMENT, domain))
        if record is None:
            raise NotFoundError(f"No certificate resource for domain {domain}", subject=domain)

        try:
            return CertificateResource.from_json(json.loads(record["data"]))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise CertificateDecodeError(
                f"Error while decoding the meta data for domain {domain}: {e}",
                subject=domain,
            ) from e

    def read_raw(self, domain: str) -> dict[str, bytes]:
        """Read only the PEM material ("cert", "key" and "issuer") for domain."""
        record = self.backend.read(self.backend.path(CERTS_SEGMENT, domain))
        if record is None:
            raise NotFoundError(f"No certificate for domain {domain}", subject=domain)

        return {
            name: str(record.get(name, "")).encode("UTF-8")
            for name in ("cert", "key", "issuer")
        }

    def exists(self, domain: str) -> bool:
        try:
            return self.backend.read(self.backend.path(METADATA_SEGMENT, domain)) is not None
        except BackendError as e:
            logger.debug(f"[{domain}] Treating unreadable certificate as missing: {e}")
            return False

    def read_file(self, domain: str, extension: str) -> bytes:
        """Return the certificate (".crt") or private key (".key") of domain.

        Raises
        ------
        UnsupportedFileKindError
            For any other extension.
        """
        if extension not in (CERTIFICATE_EXT, PRIVATE_KEY_EXT):
            raise UnsupportedFileKindError(
                f"Can't read {extension!r} for domain {domain}, only "
                f"{CERTIFICATE_EXT!r} and {PRIVATE_KEY_EXT!r} are supported",
                subject=domain,
            )

        resource = self.read(domain)
        if extension == CERTIFICATE_EXT:
            return resource.certificate
        return resource.private_key

    def read_certificate(self, domain: str, extension: str) -> list[x509.Certificate]:
        """Parse the stored chain for domain, leaf first.

        Raises
        ------
        CertificateParseError
            When the stored bundle can't be parsed.
        """
        content = self.read_file(domain, extension)

        # The input may be a bundle or a single certificate.
        return parse_pem_bundle(content)


def needs_renewal(certificate: x509.Certificate, domain: str, days: int) -> bool:
    """Whether certificate expires within the next `days` days. A
    non-positive `days` always asks for renewal."""
    if days <= 0:
        return True

    remaining = certificate.not_valid_after_utc - datetime.now(timezone.utc)
    if remaining > timedelta(days=days):
        logger.info(
            f"[{domain}] The certificate expires in {remaining.days} days, "
            f"the number of days defined to perform the renewal is {days}: no renewal."
        )
        return False

    return True

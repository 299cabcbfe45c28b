"""Shared fixtures: an in-memory secret backend, a config and test certificates."""

from datetime import datetime
from datetime import timedelta
from datetime import timezone
from typing import Any
from typing import Optional

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.x509.oid import NameOID

from acme_vault.config import Config
from acme_vault.errors import BackendError
from acme_vault.keys import pem_encode_private_key
from acme_vault.storage.certificates import CertificateResource
from acme_vault.vault import SecretBackend


class MemoryBackend(SecretBackend):
    """Dict backed SecretBackend that records every call."""

    def __init__(self, root: str = "acme"):
        self.root = root
        self.data: dict[str, dict[str, Any]] = {}
        self.reads: list[str] = []
        self.writes: list[str] = []
        self.fail_reads_for: set[str] = set()
        self.fail_writes_for: set[str] = set()

    def read(self, path: str) -> Optional[dict[str, Any]]:
        self.reads.append(path)
        if any(segment in path for segment in self.fail_reads_for):
            raise BackendError(f"permission denied reading {path}", subject=path)
        stored = self.data.get(path)
        return dict(stored) if stored is not None else None

    def write(self, path: str, data: dict[str, Any]) -> None:
        self.writes.append(path)
        if any(segment in path for segment in self.fail_writes_for):
            raise BackendError(f"permission denied writing {path}", subject=path)
        self.data[path] = dict(data)


@pytest.fixture()
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture()
def config() -> Config:
    return Config(
        ca_dir_url="https://acme.example.test/directory",
        vault_addr="https://vault.example.test:8200",
        vault_token="s.test-token",
    )


def _make_certificate(
    common_name: str,
    key: ec.EllipticCurvePrivateKey,
    issuer: Optional[x509.Certificate] = None,
    issuer_key: Optional[ec.EllipticCurvePrivateKey] = None,
    days: int = 90,
) -> x509.Certificate:
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer.subject if issuer is not None else subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=days))
        .sign(issuer_key or key, hashes.SHA256())
    )


@pytest.fixture(name="make_certificate")
def make_certificate_fixture():
    return _make_certificate


@pytest.fixture(scope="session")
def chain() -> tuple[x509.Certificate, x509.Certificate, ec.EllipticCurvePrivateKey]:
    """An intermediate and a leaf signed by it, plus the leaf key."""
    issuer_key = ec.generate_private_key(ec.SECP256R1())
    issuer = _make_certificate("Test Intermediate", issuer_key, days=365)
    leaf_key = ec.generate_private_key(ec.SECP256R1())
    leaf = _make_certificate("example.com", leaf_key, issuer=issuer, issuer_key=issuer_key)
    return leaf, issuer, leaf_key


@pytest.fixture()
def resource(chain) -> CertificateResource:
    leaf, issuer, leaf_key = chain
    issuer_pem = issuer.public_bytes(Encoding.PEM)
    return CertificateResource(
        domain="example.com",
        cert_url="https://acme.example.test/cert/abc",
        cert_stable_url="https://acme.example.test/cert/abc",
        private_key=pem_encode_private_key(leaf_key),
        certificate=leaf.public_bytes(Encoding.PEM) + issuer_pem,
        issuer_certificate=issuer_pem,
    )

import json
from base64 import urlsafe_b64encode

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature
from cryptography.utils import int_to_bytes

from acme_vault.keys import PrivateKey


def b64url(data: bytes) -> str:
    return urlsafe_b64encode(data).strip(b"=").decode("ASCII")


def _ec_hash(key: ec.EllipticCurvePrivateKey) -> hashes.HashAlgorithm:
    return hashes.SHA384() if key.curve.key_size == 384 else hashes.SHA256()


def jws_algorithm(key: PrivateKey) -> str:
    """The JWA "alg" value for signing with the given key (RFC 7518 Section 3.1)."""
    if isinstance(key, rsa.RSAPrivateKey):
        return "RS256"
    if key.curve.key_size == 384:
        return "ES384"
    return "ES256"


def create_jwk(key: PrivateKey) -> dict[str, str]:
    # Only the minimum required members, in lexicographic order. This becomes
    # vital for the JWK Thumbprint, see RFC 8555 Section 8.1 and RFC 7638
    # Section 3.2.
    public_numbers = key.public_key().public_numbers()
    if isinstance(key, rsa.RSAPrivateKey):
        return {
            "e": b64url(int_to_bytes(public_numbers.e)),
            "kty": "RSA",
            "n": b64url(int_to_bytes(public_numbers.n)),
        }

    size = (key.curve.key_size + 7) // 8
    return {
        "crv": f"P-{key.curve.key_size}",
        "kty": "EC",
        "x": b64url(int_to_bytes(public_numbers.x, size)),
        "y": b64url(int_to_bytes(public_numbers.y, size)),
    }


def _sign(key: PrivateKey, signing_input: bytes) -> bytes:
    if isinstance(key, rsa.RSAPrivateKey):
        return key.sign(signing_input, padding.PKCS1v15(), hashes.SHA256())

    # key.sign() returns a DSS encoded signature, whereas JWS wants the plain
    # concatenation of r and s (RFC 7518 Section 3.4)
    (r, s) = decode_dss_signature(
        key.sign(signing_input, signature_algorithm=ec.ECDSA(_ec_hash(key)))
    )
    size = (key.curve.key_size + 7) // 8
    return int_to_bytes(r, size) + int_to_bytes(s, size)


def create_flattened_jws(key: PrivateKey, protected_header: str, payload: str) -> str:
    b64url_payload = b64url(payload.encode("UTF-8"))
    b64url_protected_header = b64url(protected_header.encode("UTF-8"))

    signature = _sign(key, f"{b64url_protected_header}.{b64url_payload}".encode("ASCII"))

    return json.dumps(
        {
            "protected": b64url_protected_header,
            "payload": b64url_payload,
            "signature": b64url(signature),
        }
    )


def create_jwk_thumbprint(key: PrivateKey) -> str:
    thumbprint = hashes.Hash(hashes.SHA256())
    thumbprint.update(
        json.dumps(
            create_jwk(key=key),
            # JWK Thumbprint is computed with zero whitespace, RFC 7638 Section 3
            separators=(",", ":"),
        ).encode("UTF-8")
    )
    return b64url(thumbprint.finalize())

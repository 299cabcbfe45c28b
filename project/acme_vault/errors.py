from typing import Optional


class AcmeVaultError(Exception):
    """Base class for every error raised by the storage and challenge layers.

    Parameters
    ----------
    message : str
        Human readable description of what failed.
    subject : str, optional
        The user identifier, domain, path or address the failure concerns.
    """

    def __init__(self, message: str, subject: Optional[str] = None):
        super().__init__(message)
        self.subject = subject


class BackendError(AcmeVaultError):
    """The secret store could not be reached or rejected the request."""


class NotFoundError(AcmeVaultError):
    """No entry exists at the requested path."""


class DecodeError(AcmeVaultError):
    pass


class AccountDecodeError(DecodeError):
    pass


class KeyDecodeError(DecodeError):
    pass


class CertificateDecodeError(DecodeError):
    pass


class UnknownKeyTypeError(DecodeError):
    """The PEM block label is neither an RSA nor an EC private key."""


class UnsupportedFileKindError(AcmeVaultError):
    pass


class CertificateParseError(AcmeVaultError):
    """A stored PEM bundle did not contain parseable certificates."""


class RegistrationError(AcmeVaultError):
    """The authority could not resolve an account for a private key."""


class ListenerBindError(AcmeVaultError):
    pass


class ConfigError(AcmeVaultError):
    pass

from acme_vault.storage.accounts import Account
from acme_vault.storage.accounts import AccountsStorage
from acme_vault.storage.certificates import CertificateResource
from acme_vault.storage.certificates import CertificatesStorage

__all__ = ["Account", "AccountsStorage", "CertificateResource", "CertificatesStorage"]

from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Optional

from acme_vault.acme_client.endpoint import Endpoint


@dataclass
class AccountBody:
    # RFC Section 7.1.2
    status: str = ""
    contact: list[str] = field(default_factory=list)
    tos_agreed: Optional[bool] = None
    orders: str = ""

    @staticmethod
    def from_json(response_json: dict[str, Any]):
        return AccountBody(
            status=response_json.get("status") or "",
            contact=response_json.get("contact") or [],
            tos_agreed=response_json.get("termsOfServiceAgreed", None),
            orders=response_json.get("orders") or "",
        )

    def to_json(self) -> dict[str, Any]:
        body: dict[str, Any] = {"status": self.status}
        if self.contact:
            body["contact"] = self.contact
        if self.tos_agreed is not None:
            body["termsOfServiceAgreed"] = self.tos_agreed
        if self.orders:
            body["orders"] = self.orders
        return body


@dataclass
class Registration:
    """The account resource as the authority knows it, together with the
    account URL (the "kid") the authority assigned to it."""

    uri: str
    body: AccountBody

    @staticmethod
    def from_json(registration_json: dict[str, Any]):
        return Registration(
            uri=registration_json.get("uri", ""),
            body=AccountBody.from_json(registration_json.get("body", {})),
        )

    def to_json(self) -> dict[str, Any]:
        return {"body": self.body.to_json(), "uri": self.uri}


@dataclass
class AccountStub:
    # RFC Section 7.3, for requesting a new or existing account
    contact: list[str] = field(default_factory=list)
    tos_agreed: Optional[bool] = field(default=None)
    only_return_existing: Optional[bool] = field(default=None)

    def to_json(self):
        stub: dict[str, Any] = {}
        if self.contact:
            stub["contact"] = self.contact
        if self.tos_agreed is not None:
            stub["termsOfServiceAgreed"] = self.tos_agreed
        if self.only_return_existing is not None:
            stub["onlyReturnExisting"] = self.only_return_existing
        return stub


@dataclass
class NewAccountEndpoint(Endpoint):
    method: str = "POST"
    use_jwk: bool = True
    use_kid: bool = False

    def __init__(self, url: str):
        self.url = url

"""OAuth parameter builders for bootstrap and API requests."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping

from ..config import OAuthConfig
from .signature import SignatureGenerator, percent_encode

RSA_SHA256 = "RSA-SHA256"
HMAC_SHA256 = "HMAC-SHA256"


@dataclass(slots=True)
class ApiRequest:
    """The parts of an outbound request that the HMAC signature covers."""

    method: str
    url: str
    live_session_token: str
    query: Mapping[str, Any] = field(default_factory=dict)
    body: Mapping[str, Any] = field(default_factory=dict)


class Parameters(ABC):
    """Single-use builder for one request's OAuth parameters.

    Every ``add_*`` step returns a new parameter mapping instead of mutating
    the previous one. The signature step must come after every other signed
    field, and the realm is appended last since it is not signed. A builder
    refuses to :meth:`build` twice so nonces and timestamps are never reused.
    """

    signature_method: str = ""

    def __init__(self, config: OAuthConfig, signature_generator: SignatureGenerator) -> None:
        self.config = config
        self.signature_generator = signature_generator
        self._built = False

    @staticmethod
    def _with(params: Mapping[str, str], **values: str) -> dict[str, str]:
        return {**params, **values}

    def add_consumer_key(self, params: Mapping[str, str]) -> dict[str, str]:
        return self._with(params, oauth_consumer_key=self.config.consumer_key)

    def add_access_token(self, params: Mapping[str, str]) -> dict[str, str]:
        return self._with(params, oauth_token=self.config.access_token)

    def add_nonce(self, params: Mapping[str, str]) -> dict[str, str]:
        return self._with(params, oauth_nonce=self.signature_generator.generate_nonce())

    def add_timestamp(self, params: Mapping[str, str]) -> dict[str, str]:
        return self._with(params, oauth_timestamp=self.signature_generator.generate_timestamp())

    def add_signature_method(self, params: Mapping[str, str]) -> dict[str, str]:
        return self._with(params, oauth_signature_method=self.signature_method)

    def add_realm(self, params: Mapping[str, str]) -> dict[str, str]:
        return self._with(params, realm=self.config.realm)

    def base_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        for step in (
            self.add_consumer_key,
            self.add_access_token,
            self.add_nonce,
            self.add_timestamp,
            self.add_signature_method,
        ):
            params = step(params)
        return params

    @abstractmethod
    def add_signature(self, params: Mapping[str, str]) -> dict[str, str]:
        """Return ``params`` plus ``oauth_signature`` computed over them."""

    def _unsigned_params(self) -> dict[str, str]:
        return self.base_params()

    def build(self) -> dict[str, str]:
        if self._built:
            raise RuntimeError(
                f"{type(self).__name__} is single use; create a new builder per request")
        self._built = True
        signed = self.add_signature(self._unsigned_params())
        return self.add_realm(signed)


class AuthenticationParameters(Parameters):
    """Parameters for the RSA-signed live session token request."""

    signature_method = RSA_SHA256

    def add_diffie_hellman_challenge(self, params: Mapping[str, str]) -> dict[str, str]:
        return self._with(
            params, diffie_hellman_challenge=self.signature_generator.generate_dh_challenge())

    def _unsigned_params(self) -> dict[str, str]:
        return self.add_diffie_hellman_challenge(self.base_params())

    def add_signature(self, params: Mapping[str, str]) -> dict[str, str]:
        signature = self.signature_generator.generate_rsa_signature(params)
        return self._with(params, oauth_signature=percent_encode(signature))


class ApiParameters(Parameters):
    """Parameters for an HMAC-signed API request."""

    signature_method = HMAC_SHA256

    def __init__(
        self,
        config: OAuthConfig,
        signature_generator: SignatureGenerator,
        request: ApiRequest,
    ) -> None:
        super().__init__(config, signature_generator)
        self.request = request

    def add_signature(self, params: Mapping[str, str]) -> dict[str, str]:
        # generate_hmac_signature already returns a URL-encoded value
        signature = self.signature_generator.generate_hmac_signature(
            method=self.request.method,
            url=self.request.url,
            params=params,
            live_session_token=self.request.live_session_token,
            query=self.request.query,
            body=self.request.body,
        )
        return self._with(params, oauth_signature=signature)


__all__ = [
    "ApiParameters",
    "ApiRequest",
    "AuthenticationParameters",
    "HMAC_SHA256",
    "Parameters",
    "RSA_SHA256",
]

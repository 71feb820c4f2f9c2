"""OAuth ``Authorization`` header formatting."""

from __future__ import annotations

from typing import Any, Mapping

from ..config import OAuthConfig
from .parameters import ApiParameters, ApiRequest, AuthenticationParameters
from .signature import SignatureGenerator


def format_oauth_header(params: Mapping[str, str]) -> str:
    """Render ``k="v"`` pairs sorted by key and joined with ``", "``.

    Values are emitted verbatim; they are expected to be URL-safe already.
    """

    return ", ".join(f'{key}="{value}"' for key, value in sorted(params.items()))


def authorization_value(header: str) -> str:
    return f"OAuth {header}"


class OAuthHeaders:
    """Build formatted OAuth headers from fresh parameter sets."""

    def __init__(self, config: OAuthConfig, signature_generator: SignatureGenerator) -> None:
        self.config = config
        self.signature_generator = signature_generator

    def authentication_header(self) -> str:
        params = AuthenticationParameters(
            self.config, self.signature_generator).build()
        return format_oauth_header(params)

    def api_header(
        self,
        method: str,
        url: str,
        live_session_token: str,
        query: Mapping[str, Any] | None = None,
        body: Mapping[str, Any] | None = None,
    ) -> str:
        request = ApiRequest(
            method=method,
            url=url,
            live_session_token=live_session_token,
            query=query or {},
            body=body or {},
        )
        params = ApiParameters(
            self.config, self.signature_generator, request).build()
        return format_oauth_header(params)


__all__ = ["OAuthHeaders", "authorization_value", "format_oauth_header"]

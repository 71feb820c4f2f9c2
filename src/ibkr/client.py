"""High-level entry point tying configuration, transport and OAuth together."""

from __future__ import annotations

from typing import Any, Mapping, Optional

import requests

from .config import Environment, IBKRSettings, OAuthConfig
from .http.client import IBKRHttpClient
from .oauth.authenticator import Authenticator
from .oauth.signature import SignatureGenerator
from .oauth.token import LiveSessionToken


class IBKRClient:
    """Authenticated Client Portal Web API client.

    Several clients can live in one process, each with its own configuration
    and session; nothing is shared through module state.
    """

    def __init__(
        self,
        config: OAuthConfig | None = None,
        *,
        settings: IBKRSettings | None = None,
        session: Optional[requests.Session] = None,
        signature_generator: Optional[SignatureGenerator] = None,
    ) -> None:
        self.config = config or OAuthConfig.from_settings(settings)
        self.http_client = IBKRHttpClient(self.config, session=session)
        self.authenticator = Authenticator(
            self.config,
            self.http_client,
            signature_generator=signature_generator,
        )
        self.http_client.authenticator = self.authenticator

    def __enter__(self) -> "IBKRClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self.http_client.close()

    def authenticate(self) -> bool:
        return self.authenticator.authenticate()

    def authenticated(self) -> bool:
        return self.authenticator.authenticated()

    def token(self) -> LiveSessionToken | None:
        return self.authenticator.token()

    def logout(self) -> bool:
        return self.authenticator.logout()

    def initialize_session(self, priority: bool = False) -> Any:
        return self.authenticator.initialize_session(priority=priority)

    def ping(self) -> Any:
        return self.authenticator.ping()

    def get(self, path: str, *, params: Optional[Mapping[str, Any]] = None,
            headers: Optional[Mapping[str, str]] = None) -> Any:
        return self.http_client.get(path, params=params, headers=headers)

    def post(self, path: str, *, body: Optional[Mapping[str, Any]] = None,
             headers: Optional[Mapping[str, str]] = None) -> Any:
        return self.http_client.post(path, body=body, headers=headers)

    def put(self, path: str, *, body: Optional[Mapping[str, Any]] = None,
            headers: Optional[Mapping[str, str]] = None) -> Any:
        return self.http_client.put(path, body=body, headers=headers)

    def delete(self, path: str, *, params: Optional[Mapping[str, Any]] = None,
               headers: Optional[Mapping[str, str]] = None) -> Any:
        return self.http_client.delete(path, params=params, headers=headers)

    @property
    def environment(self) -> Environment:
        return self.config.environment

    @property
    def sandbox(self) -> bool:
        return self.config.sandbox

    @property
    def production(self) -> bool:
        return self.config.production


__all__ = ["IBKRClient"]

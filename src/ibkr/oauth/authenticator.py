"""Live session token lifecycle: negotiation, refresh, signing and logout."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Mapping, Optional

import requests

from ..config import LIVE_SESSION_TOKEN_PATH, OAuthConfig
from ..errors import ApiError, AuthenticationError, ErrorKind
from .headers import OAuthHeaders, authorization_value
from .response import parse_live_session_token
from .signature import SignatureGenerator
from .token import LiveSessionToken

if TYPE_CHECKING:  # pragma: no cover
    from ..http.client import IBKRHttpClient

logger = logging.getLogger(__name__)

LOGOUT_PATH = "/v1/api/logout"
SSODH_INIT_PATH = "/v1/api/iserver/auth/ssodh/init"
TICKLE_PATH = "/v1/api/tickle"


def _ok(response: requests.Response) -> bool:
    return 200 <= response.status_code < 300


class Authenticator:
    """Hold the current :class:`LiveSessionToken` and sign requests with it.

    States are *unauthenticated* (no token, or an expired one) and
    *authenticated*. Negotiations are serialized by a lock, so concurrent
    callers that notice an expired token trigger a single bootstrap request
    and all observe the token it produced.
    """

    def __init__(
        self,
        config: OAuthConfig,
        http_client: "IBKRHttpClient",
        *,
        signature_generator: Optional[SignatureGenerator] = None,
    ) -> None:
        self.config = config
        self.http_client = http_client
        self.signature_generator = signature_generator or SignatureGenerator(
            config)
        self.headers = OAuthHeaders(config, self.signature_generator)
        self.current_token: LiveSessionToken | None = None
        self._lock = threading.RLock()

    # -- state --------------------------------------------------------------

    def authenticate(self) -> bool:
        """Negotiate a new live session token and report whether it is valid."""

        with self._lock:
            token = self._request_live_session_token()
            self.current_token = token
            valid = token.valid(self.config.consumer_key)
        if valid:
            logger.info("Authenticated with IBKR (%s)",
                        self.config.environment.value)
        else:
            logger.warning(
                "Live session token negotiated but failed signature validation")
        return valid

    def authenticated(self) -> bool:
        token = self.current_token
        return token is not None and token.valid(self.config.consumer_key)

    def token(self) -> LiveSessionToken | None:
        """Return the current token, negotiating a new one if missing or expired."""

        token = self.current_token
        if token is None or token.expired():
            with self._lock:
                token = self.current_token
                if token is None or token.expired():
                    logger.debug("Live session token missing or expired; re-authenticating")
                    self.authenticate()
                token = self.current_token
        return token

    live_session_token = token

    def refresh_if_expired(self) -> None:
        """Renew an expired token; does nothing before the first authentication."""

        token = self.current_token
        if token is not None and token.expired():
            self.token()

    def logout(self) -> bool:
        with self._lock:
            if not self.authenticated():
                return True
            response = self.http_client.post_raw(LOGOUT_PATH)
            if not _ok(response):
                raise ApiError.from_response(
                    response, message="Logout failed", context={"operation": "logout"})
            self.current_token = None
        logger.info("Logged out of IBKR session")
        return True

    # -- brokerage session --------------------------------------------------

    def initialize_session(self, priority: bool = False) -> Any:
        self.ensure_authenticated()
        response = self.http_client.post_raw(
            SSODH_INIT_PATH, body={"publish": True, "compete": priority})
        if not _ok(response):
            raise AuthenticationError.from_response(
                response,
                context={"operation": "initialize_session"},
                kind=ErrorKind.SESSION_INIT_FAILED,
            )
        return response.json()

    def ping(self) -> Any:
        self.ensure_authenticated()
        response = self.http_client.post_raw(TICKLE_PATH)
        if not _ok(response):
            raise ApiError.from_response(
                response, message="Ping failed", context={"operation": "ping"})
        return response.json()

    # -- headers ------------------------------------------------------------

    def oauth_header_for_authentication(self) -> str:
        return self.headers.authentication_header()

    def oauth_header_for_api_request(
        self,
        method: str,
        url: str,
        query: Optional[Mapping[str, Any]] = None,
        body: Optional[Mapping[str, Any]] = None,
    ) -> str:
        token = self.current_token
        if token is None or token.token is None or not token.valid(self.config.consumer_key):
            raise self._not_authenticated()
        return self.headers.api_header(method, url, token.token, query=query, body=body)

    def ensure_authenticated(self) -> None:
        if not self.authenticated():
            raise self._not_authenticated()

    @staticmethod
    def _not_authenticated() -> AuthenticationError:
        return AuthenticationError(
            "Not authenticated. Call authenticate first.",
            kind=ErrorKind.NOT_AUTHENTICATED,
            suggestions=["Call authenticate() before making signed requests."],
        )

    # -- bootstrap ----------------------------------------------------------

    def _request_live_session_token(self) -> LiveSessionToken:
        try:
            header = self.oauth_header_for_authentication()
            logger.debug("Requesting live session token from %s",
                         self.config.live_session_token_url)
            try:
                response = self.http_client.post_raw(
                    LIVE_SESSION_TOKEN_PATH,
                    headers={"Authorization": authorization_value(header)},
                )
            except requests.RequestException as exc:
                raise AuthenticationError(
                    f"Live session token request failed: {exc}",
                    context={"operation": "live_session_token",
                             "endpoint": LIVE_SESSION_TOKEN_PATH},
                ) from exc
            return parse_live_session_token(response, self.signature_generator)
        finally:
            self.signature_generator.discard_challenge()


__all__ = [
    "Authenticator",
    "LOGOUT_PATH",
    "SSODH_INIT_PATH",
    "TICKLE_PATH",
]

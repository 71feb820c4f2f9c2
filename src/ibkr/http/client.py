"""``requests`` based transport for the IBKR Client Portal Web API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping, Optional

import requests

from ..config import LIVE_SESSION_TOKEN_PATH, OAuthConfig
from ..errors import ApiError, AuthenticationError, ErrorKind
from ..oauth.headers import authorization_value
from ..oauth.signature import flatten_params

if TYPE_CHECKING:  # pragma: no cover
    from ..oauth.authenticator import Authenticator

logger = logging.getLogger(__name__)

_QUERY_METHODS = {"GET", "DELETE"}
_BODY_METHODS = {"POST", "PUT"}


def is_success(response: requests.Response) -> bool:
    return 200 <= response.status_code < 300


def parse_body(response: requests.Response) -> Any:
    """Return decoded JSON, the raw text when it is not JSON, or ``None`` when empty."""

    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class IBKRHttpClient:
    """Thin wrapper around a :class:`requests.Session` that signs requests.

    Every request except the live session token bootstrap gets an
    ``Authorization: OAuth ...`` header from the attached
    :class:`~ibkr.oauth.authenticator.Authenticator`. Transport exceptions
    (timeouts, connection errors) propagate unchanged.
    """

    def __init__(
        self,
        config: OAuthConfig,
        *,
        session: Optional[requests.Session] = None,
        authenticator: "Authenticator | None" = None,
    ) -> None:
        self.config = config
        self.session = session or requests.Session()
        self.authenticator = authenticator
        self.timeout = config.timeout

    def close(self) -> None:
        self.session.close()

    def get(self, path: str, *, params: Optional[Mapping[str, Any]] = None,
            headers: Optional[Mapping[str, str]] = None) -> Any:
        return self._handle_response(self.request_raw("GET", path, params=params, headers=headers))

    def post(self, path: str, *, body: Optional[Mapping[str, Any]] = None,
             headers: Optional[Mapping[str, str]] = None) -> Any:
        return self._handle_response(self.request_raw("POST", path, body=body, headers=headers))

    def put(self, path: str, *, body: Optional[Mapping[str, Any]] = None,
            headers: Optional[Mapping[str, str]] = None) -> Any:
        return self._handle_response(self.request_raw("PUT", path, body=body, headers=headers))

    def delete(self, path: str, *, params: Optional[Mapping[str, Any]] = None,
               headers: Optional[Mapping[str, str]] = None) -> Any:
        return self._handle_response(self.request_raw("DELETE", path, params=params, headers=headers))

    def post_raw(self, path: str, *, body: Optional[Mapping[str, Any]] = None,
                 headers: Optional[Mapping[str, str]] = None) -> requests.Response:
        return self.request_raw("POST", path, body=body, headers=headers)

    def request_raw(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        body: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> requests.Response:
        """Send a request and return the unparsed :class:`requests.Response`."""

        method = method.upper()
        url = self.config.url_for(path)
        query = dict(params or {}) if method in _QUERY_METHODS else {}
        payload = dict(body or {}) if method in _BODY_METHODS else {}

        request_headers = {
            "User-Agent": self.config.user_agent,
            "Accept": "application/json",
        }
        request_headers.update(headers or {})
        if "Authorization" not in request_headers and self._needs_auth(path):
            request_headers["Authorization"] = self._authorization_header(
                method, url, query, payload)

        logger.debug("%s %s", method, url)
        return self.session.request(
            method,
            url,
            params=flatten_params(query) or None,
            json=payload or None,
            headers=request_headers,
            timeout=self.timeout,
        )

    def _needs_auth(self, path: str) -> bool:
        return self.authenticator is not None and LIVE_SESSION_TOKEN_PATH not in path

    def _authorization_header(
        self, method: str, url: str, query: Mapping[str, Any], body: Mapping[str, Any]
    ) -> str:
        authenticator = self.authenticator
        if authenticator is None:
            raise AuthenticationError("No authenticator attached to the HTTP client",
                                      kind=ErrorKind.NOT_AUTHENTICATED)
        authenticator.refresh_if_expired()
        header = authenticator.oauth_header_for_api_request(
            method=method,
            url=url.split("?", 1)[0],
            query=query,
            body=body,
        )
        return authorization_value(header)

    def _handle_response(self, response: requests.Response) -> Any:
        if is_success(response):
            return parse_body(response)
        context = {
            "endpoint": getattr(response, "url", None),
            "request_id": response.headers.get("X-Request-ID"),
            "retry_after": response.headers.get("Retry-After"),
        }
        context = {key: value for key, value in context.items() if value}
        if response.status_code == 401:
            raise AuthenticationError.from_response(response, context=context)
        raise ApiError.from_response(response, context=context)


__all__ = ["IBKRHttpClient", "is_success", "parse_body"]

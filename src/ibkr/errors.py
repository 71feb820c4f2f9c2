"""Error types raised by the IBKR client."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Mapping


class ErrorKind(str, Enum):
    """Enumerate the failure reasons surfaced by :class:`IBKRError`."""

    # configuration
    CONFIGURATION = "configuration"
    MISSING_CREDENTIALS = "missing_credentials"
    INVALID_ENVIRONMENT = "invalid_environment"
    INVALID_KEY = "invalid_key"

    # authentication
    AUTHENTICATION_FAILED = "authentication_failed"
    INVALID_CREDENTIALS = "invalid_credentials"
    TOKEN_EXPIRED = "token_expired"
    TOKEN_INVALID = "token_invalid"
    SIGNATURE_INVALID = "signature_invalid"
    SESSION_INIT_FAILED = "session_init_failed"
    NOT_AUTHENTICATED = "not_authenticated"
    INVALID_RESPONSE = "invalid_response"
    NO_CHALLENGE = "no_challenge"

    # api
    API_ERROR = "api_error"
    BAD_REQUEST = "bad_request"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    SERVICE_UNAVAILABLE = "service_unavailable"


_DEFAULT_STATUS_MESSAGES = {
    400: "Bad request - invalid parameters",
    401: "Authentication failed",
    403: "Forbidden - insufficient permissions",
    404: "Resource not found",
    429: "Rate limit exceeded",
}


def default_message_for_status(status: int) -> str:
    if status in _DEFAULT_STATUS_MESSAGES:
        return _DEFAULT_STATUS_MESSAGES[status]
    if 500 <= status <= 599:
        return "Server error occurred"
    return f"HTTP request failed with status {status}"


def extract_error_details(response: Any) -> dict[str, Any]:
    """Pull the error message, code and request id out of an HTTP response.

    Works with anything shaped like :class:`requests.Response` (``text`` and
    ``headers`` attributes). JSON bodies are searched for the usual IBKR error
    keys; other bodies contribute their first 200 characters as the message.
    """

    body = getattr(response, "text", None)
    if not body:
        return {}
    headers = getattr(response, "headers", None) or {}
    try:
        parsed = json.loads(body)
    except ValueError:
        return {"message": body.strip()[:200], "raw_response": body}
    if not isinstance(parsed, dict):
        return {"raw_response": parsed}
    details = {
        "message": parsed.get("error") or parsed.get("message") or parsed.get("errorMessage"),
        "code": parsed.get("code") or parsed.get("errorCode"),
        "request_id": parsed.get("requestId") or headers.get("X-Request-ID"),
        "raw_response": parsed,
    }
    return {key: value for key, value in details.items() if value is not None}


class IBKRError(Exception):
    """Base class for all client errors.

    Attributes
    ----------
    kind:
        :class:`ErrorKind` naming the failure reason.
    code:
        HTTP status or server-provided error code, when there is one.
    details:
        Values extracted from the server response.
    context:
        Structured information about the failed operation (endpoint, method,
        operation name, account id, ...).
    suggestions:
        Human readable hints for resolving the error.
    """

    default_kind: ErrorKind = ErrorKind.API_ERROR
    default_message = "IBKR request failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        kind: ErrorKind | None = None,
        code: int | str | None = None,
        details: Mapping[str, Any] | None = None,
        context: Mapping[str, Any] | None = None,
        suggestions: list[str] | None = None,
        response: Any = None,
    ) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.kind = kind or self.default_kind
        self.code = code
        self.details = dict(details or {})
        self.context = dict(context or {})
        self.suggestions = list(suggestions or [])
        self.response = response

    @property
    def status_code(self) -> int | None:
        return getattr(self.response, "status_code", None)

    def to_dict(self) -> dict[str, Any]:
        payload = {
            "error": type(self).__name__,
            "kind": self.kind.value,
            "message": self.message,
            "code": self.code,
            "details": self.details or None,
            "context": self.context or None,
            "suggestions": self.suggestions or None,
        }
        return {key: value for key, value in payload.items() if value is not None}


class ConfigurationError(IBKRError):
    """Missing or invalid credentials, key material or settings."""

    default_kind = ErrorKind.CONFIGURATION
    default_message = "Configuration error"


class AuthenticationError(IBKRError):
    """OAuth negotiation failed or an operation needs a valid session."""

    default_kind = ErrorKind.AUTHENTICATION_FAILED
    default_message = "Authentication failed"

    @classmethod
    def from_response(
        cls,
        response: Any,
        *,
        message: str | None = None,
        context: Mapping[str, Any] | None = None,
        kind: ErrorKind | None = None,
    ) -> "AuthenticationError":
        kind_override = kind
        details = extract_error_details(response)
        error_message = message or details.get("message")
        status = getattr(response, "status_code", None)

        kind = ErrorKind.AUTHENTICATION_FAILED
        suggestions: list[str] = []
        if status == 401:
            text = (error_message or "").lower()
            if "expired" in text:
                kind = ErrorKind.TOKEN_EXPIRED
                error_message = error_message or "Access token has expired"
            elif "signature" in text:
                kind = ErrorKind.SIGNATURE_INVALID
                suggestions.append(
                    "Check that the signature key matches the one registered for the consumer key.")
            elif "invalid" in text:
                kind = ErrorKind.TOKEN_INVALID
            else:
                kind = ErrorKind.INVALID_CREDENTIALS
                error_message = error_message or "Invalid credentials provided"
                suggestions.append(
                    "Verify IBKR_CONSUMER_KEY, IBKR_ACCESS_TOKEN and IBKR_ACCESS_TOKEN_SECRET.")
        elif status == 403:
            kind = ErrorKind.SESSION_INIT_FAILED
            error_message = error_message or "Failed to initialize brokerage session"

        return cls(
            error_message or default_message_for_status(status or 0),
            kind=kind_override or kind,
            code=details.get("code") or status,
            details=details,
            context=context,
            suggestions=suggestions,
            response=response,
        )


class ApiError(IBKRError):
    """Non-authentication failure reported by the IBKR API."""

    default_kind = ErrorKind.API_ERROR
    default_message = "API request failed"

    @classmethod
    def from_response(
        cls,
        response: Any,
        *,
        message: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> "ApiError":
        details = extract_error_details(response)
        status = getattr(response, "status_code", 0) or 0
        error_message = message or details.get(
            "message") or default_message_for_status(status)

        if status == 400:
            kind = ErrorKind.BAD_REQUEST
        elif status == 404:
            kind = ErrorKind.NOT_FOUND
        elif status == 429:
            kind = ErrorKind.RATE_LIMITED
        elif 500 <= status <= 502:
            kind = ErrorKind.SERVER_ERROR
        elif status == 503:
            kind = ErrorKind.SERVICE_UNAVAILABLE
        else:
            kind = ErrorKind.API_ERROR

        merged_context = {"response_status": status, **dict(context or {})}
        return cls(
            error_message,
            kind=kind,
            code=details.get("code") or status,
            details=details,
            context=merged_context,
            response=response,
        )


__all__ = [
    "ApiError",
    "AuthenticationError",
    "ConfigurationError",
    "ErrorKind",
    "IBKRError",
    "default_message_for_status",
    "extract_error_details",
]

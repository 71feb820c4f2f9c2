"""Parsing of the live session token bootstrap response."""

from __future__ import annotations

from typing import Any

import requests

from ..errors import AuthenticationError, ErrorKind
from .signature import SignatureGenerator
from .token import LiveSessionToken

REQUIRED_FIELDS: tuple[str, ...] = (
    "diffie_hellman_response",
    "live_session_token_signature",
    "live_session_token_expiration",
)


def parse_json_response(response: requests.Response) -> dict[str, Any]:
    if not 200 <= response.status_code < 300:
        raise AuthenticationError.from_response(
            response, context={"operation": "live_session_token"})
    try:
        data = response.json()
    except ValueError as exc:
        raise AuthenticationError(
            f"Invalid response format: {exc}",
            kind=ErrorKind.INVALID_RESPONSE,
            code=response.status_code,
            response=response,
        ) from exc
    if not isinstance(data, dict):
        raise AuthenticationError(
            "Invalid response format: expected a JSON object",
            kind=ErrorKind.INVALID_RESPONSE,
            code=response.status_code,
            response=response,
        )
    return data


def parse_live_session_token(
    response: requests.Response, signature_generator: SignatureGenerator
) -> LiveSessionToken:
    """Turn the bootstrap response into a :class:`LiveSessionToken`.

    The DH response is combined with the pending challenge of
    ``signature_generator`` to compute the token itself.
    """

    data = parse_json_response(response)
    missing = [name for name in REQUIRED_FIELDS if data.get(name) is None]
    if missing:
        raise AuthenticationError(
            f"Missing required fields in response: {', '.join(missing)}",
            kind=ErrorKind.INVALID_RESPONSE,
            code=response.status_code,
            details={"missing": missing},
            response=response,
        )

    token = signature_generator.compute_live_session_token(
        data["diffie_hellman_response"])
    return LiveSessionToken(
        token=token,
        signature=data["live_session_token_signature"],
        expires_in=data["live_session_token_expiration"],
    )


__all__ = ["REQUIRED_FIELDS", "parse_json_response", "parse_live_session_token"]

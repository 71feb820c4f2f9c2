"""Cryptographic primitives for the IBKR OAuth 1.0a extended flow.

The live session token handshake combines three operations:

1. The bootstrap request is signed with RSA-SHA256 using the consumer's
   signature key. Its base string is prefixed with the "prepend", the
   decrypted access token secret in hex.
2. A Diffie-Hellman exchange derives a shared secret ``K``. The live session
   token is ``base64(HMAC-SHA1(K, prepend))``.
3. Every later API request is signed with HMAC-SHA256 keyed by the live
   session token.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import secrets
import string
import threading
import time
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping
from urllib.parse import quote_plus

from Crypto.Cipher import PKCS1_v1_5 as PKCS1_v1_5_Cipher
from Crypto.Hash import SHA256
from Crypto.Signature import pkcs1_15

from ..config import OAuthConfig
from ..errors import AuthenticationError, ConfigurationError, ErrorKind

logger = logging.getLogger(__name__)

NONCE_ALPHABET = string.ascii_letters + string.digits
DH_EXPONENT_BITS = 256
_EXCLUDED_FROM_RSA_BASE = frozenset({"oauth_signature", "realm"})


def percent_encode(value: str) -> str:
    """Form-component encode ``value`` (unreserved characters kept, space as ``+``)."""

    return quote_plus(value, safe="")


def stringify_value(value: Any) -> str:
    """Render a scalar parameter value the same way on every call.

    Booleans become ``true``/``false``, ``None`` becomes an empty string and
    floats are written in fixed-point notation.
    """

    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return format(Decimal(repr(value)), "f")
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def flatten_params(params: Mapping[str, Any], prefix: str | None = None) -> list[tuple[str, str]]:
    """Flatten nested parameters into ``(key, value)`` string pairs.

    Sequences repeat their key once per item and mappings nest as
    ``key[subkey]``, recursively.
    """

    pairs: list[tuple[str, str]] = []
    for raw_key, value in params.items():
        key = f"{prefix}[{raw_key}]" if prefix else str(raw_key)
        pairs.extend(_flatten_value(key, value))
    return pairs


def _flatten_value(key: str, value: Any) -> Iterable[tuple[str, str]]:
    if isinstance(value, Mapping):
        return flatten_params(value, key)
    if isinstance(value, (list, tuple)):
        pairs: list[tuple[str, str]] = []
        for item in value:
            pairs.extend(_flatten_value(key, item))
        return pairs
    return [(key, stringify_value(value))]


def join_params(params: Mapping[str, Any]) -> str:
    """Flatten, sort and join parameters as ``k=v&k=v``."""

    return "&".join(f"{key}={value}" for key, value in sorted(flatten_params(params)))


def shared_secret_bytes(shared_secret: int) -> bytes:
    """Big-endian bytes of the DH secret with a leading sign byte when needed.

    A zero byte is prepended whenever the bit length is a multiple of eight,
    matching the two's-complement encoding used by the IBKR servers.
    """

    hex_secret = format(shared_secret, "x")
    if len(hex_secret) % 2:
        hex_secret = "0" + hex_secret
    secret_bytes = bytes.fromhex(hex_secret)
    if shared_secret.bit_length() % 8 == 0:
        secret_bytes = b"\x00" + secret_bytes
    return secret_bytes


class SignatureGenerator:
    """Stateless signer, apart from the pending Diffie-Hellman exponent.

    The exponent drawn by :meth:`generate_dh_challenge` lives in thread-local
    storage and is consumed by :meth:`compute_live_session_token`, so every
    negotiation has its own secret and a token can never be derived twice
    from the same challenge.
    """

    def __init__(
        self,
        config: OAuthConfig,
        *,
        random_bits: Callable[[int], int] = secrets.randbits,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self._random_bits = random_bits
        self._clock = clock
        self._negotiation = threading.local()

    # -- request metadata -------------------------------------------------

    def generate_nonce(self, length: int = 16) -> str:
        return "".join(secrets.choice(NONCE_ALPHABET) for _ in range(length))

    def generate_timestamp(self) -> str:
        return str(int(self._clock()))

    # -- Diffie-Hellman -----------------------------------------------------

    @property
    def challenge_pending(self) -> bool:
        return getattr(self._negotiation, "dh_random", None) is not None

    def generate_dh_challenge(self) -> str:
        """Draw a fresh exponent ``a`` and return ``g^a mod p`` in hex."""

        dh = self.config.keys.dh_params
        dh_random = self._random_bits(DH_EXPONENT_BITS)
        self._negotiation.dh_random = dh_random
        return format(pow(dh.generator, dh_random, dh.prime), "x")

    def discard_challenge(self) -> None:
        self._negotiation.dh_random = None

    def compute_live_session_token(self, dh_response: str) -> str:
        """Derive the base64 live session token from the server's DH response."""

        dh_random = getattr(self._negotiation, "dh_random", None)
        if dh_random is None:
            raise AuthenticationError(
                "DH challenge must be generated first", kind=ErrorKind.NO_CHALLENGE)
        self._negotiation.dh_random = None

        try:
            server_public = int(dh_response, 16)
        except (TypeError, ValueError) as exc:
            raise AuthenticationError(
                f"Invalid diffie_hellman_response: {dh_response!r}",
                kind=ErrorKind.INVALID_RESPONSE,
            ) from exc

        shared_secret = pow(server_public, dh_random,
                            self.config.keys.dh_params.prime)
        prepend = bytes.fromhex(self.decrypt_prepend())
        digest = hmac.new(shared_secret_bytes(shared_secret),
                          prepend, hashlib.sha1).digest()
        logger.debug("Derived live session token from DH response")
        return base64.b64encode(digest).decode("ascii")

    def decrypt_prepend(self) -> str:
        """Decrypt the access token secret and return it as lowercase hex."""

        try:
            encrypted = base64.b64decode(self.config.access_token_secret)
            decrypted = PKCS1_v1_5_Cipher.new(self.config.keys.encryption_key).decrypt(
                encrypted, None)
        except (ValueError, TypeError) as exc:
            raise ConfigurationError(
                f"Failed to decrypt access token secret: {exc}",
                kind=ErrorKind.INVALID_KEY,
            ) from exc
        if decrypted is None:
            raise ConfigurationError(
                "Failed to decrypt access token secret: invalid padding",
                kind=ErrorKind.INVALID_KEY,
            )
        return decrypted.hex()

    # -- signatures ---------------------------------------------------------

    def rsa_base_string(self, params: Mapping[str, Any]) -> str:
        signed = {key: value for key, value in params.items()
                  if key not in _EXCLUDED_FROM_RSA_BASE}
        return (
            f"{self.decrypt_prepend()}POST"
            f"&{percent_encode(self.config.live_session_token_url)}"
            f"&{percent_encode(join_params(signed))}"
        )

    def generate_rsa_signature(self, params: Mapping[str, Any]) -> str:
        """RSA-SHA256 sign the bootstrap parameters; returns plain base64."""

        digest = SHA256.new(self.rsa_base_string(params).encode("utf-8"))
        signature = pkcs1_15.new(self.config.keys.signature_key).sign(digest)
        return base64.b64encode(signature).decode("ascii")

    def hmac_base_string(
        self,
        method: str,
        url: str,
        params: Mapping[str, Any],
        *,
        query: Mapping[str, Any] | None = None,
        body: Mapping[str, Any] | None = None,
    ) -> str:
        merged: dict[str, Any] = dict(params)
        if query:
            merged.update(query)
        if body:
            merged.update(body)
        return f"{method.upper()}&{percent_encode(url)}&{percent_encode(join_params(merged))}"

    def generate_hmac_signature(
        self,
        method: str,
        url: str,
        params: Mapping[str, Any],
        live_session_token: str,
        *,
        query: Mapping[str, Any] | None = None,
        body: Mapping[str, Any] | None = None,
    ) -> str:
        """HMAC-SHA256 sign an API request; the result is already URL-encoded."""

        base_string = self.hmac_base_string(method, url, params, query=query, body=body)
        key = base64.b64decode(live_session_token)
        digest = hmac.new(key, base_string.encode(
            "utf-8"), hashlib.sha256).digest()
        return percent_encode(base64.b64encode(digest).decode("ascii"))


__all__ = [
    "SignatureGenerator",
    "flatten_params",
    "join_params",
    "percent_encode",
    "shared_secret_bytes",
    "stringify_value",
]

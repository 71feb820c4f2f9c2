"""Live session token value object."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

# Expirations above this value are epoch milliseconds rather than seconds.
MILLISECONDS_THRESHOLD = 4_000_000_000


def normalize_expiration(value: int | float | str) -> datetime:
    """Convert a raw ``live_session_token_expiration`` into an aware UTC datetime."""

    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"Invalid timestamp format: {value!r}")
    if isinstance(value, str):
        text = value.strip()
        if not text.isdigit():
            raise ValueError(f"Invalid timestamp format: {value!r}")
        timestamp = int(text)
    else:
        timestamp = int(value)
    if timestamp > MILLISECONDS_THRESHOLD:
        timestamp //= 1000
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


@dataclass(frozen=True, slots=True)
class LiveSessionToken:
    """Negotiated session secret plus the server's signature and expiry.

    Attributes
    ----------
    token:
        Base64 encoded HMAC key material derived from the DH exchange.
    signature:
        Hex ``HMAC-SHA1(token, consumer_key)`` as returned by the server.
    expires_in:
        Raw expiration from the server, epoch seconds or milliseconds.
    """

    token: str | None
    signature: str | None
    expires_in: int | str | None = None

    def expiration_time(self) -> datetime | None:
        if self.expires_in is None:
            return None
        return normalize_expiration(self.expires_in)

    def expired(self, now: datetime | None = None) -> bool:
        if self.expires_in is None:
            return False
        try:
            expiration = normalize_expiration(self.expires_in)
        except (ValueError, OverflowError, OSError) as exc:
            logger.warning("Invalid live session token expiration: %s", exc)
            return True
        now = now or datetime.now(timezone.utc)
        return now >= expiration

    def time_until_expiry(self, now: datetime | None = None) -> float | None:
        """Seconds left before expiry, floored at zero."""

        if self.expires_in is None:
            return None
        try:
            expiration = normalize_expiration(self.expires_in)
        except (ValueError, OverflowError, OSError):
            return 0.0
        now = now or datetime.now(timezone.utc)
        return max((expiration - now).total_seconds(), 0.0)

    def valid_signature(self, consumer_key: str | None) -> bool:
        if not consumer_key or not self.token or not self.signature:
            return False
        try:
            key = base64.b64decode(self.token, validate=True)
            expected = hmac.new(key, consumer_key.encode(
                "utf-8"), hashlib.sha1).hexdigest().lower()
            return hmac.compare_digest(
                expected.encode("ascii"), self.signature.lower().encode("utf-8"))
        except (binascii.Error, ValueError, TypeError, AttributeError):
            return False

    def valid(self, consumer_key: str | None) -> bool:
        if self.expired():
            return False
        if self.token is None or self.signature is None:
            return False
        return self.valid_signature(consumer_key)

    def to_dict(self) -> dict[str, Any]:
        try:
            expiration = self.expiration_time()
        except (ValueError, OverflowError, OSError):
            expiration = None
        return {
            "token": self.token,
            "signature": self.signature,
            "expires_in": self.expires_in,
            "expired": self.expired(),
            "expiration_time": expiration,
            "time_until_expiry": self.time_until_expiry(),
        }

    def __repr__(self) -> str:
        return (
            f"LiveSessionToken(token=<redacted>, signature={self.signature!r}, "
            f"expires_in={self.expires_in!r})"
        )


__all__ = ["LiveSessionToken", "MILLISECONDS_THRESHOLD", "normalize_expiration"]

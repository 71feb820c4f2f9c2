"""Client configuration: environment settings and loaded key material."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from Crypto.IO import PEM
from Crypto.PublicKey import RSA
from Crypto.Util.asn1 import DerSequence
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError, ErrorKind

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.ibkr.com"
DEFAULT_USER_AGENT = "ibkr-oauth-python"
LIVE_SESSION_TOKEN_PATH = "/v1/api/oauth/live_session_token"


class Environment(str, Enum):
    """IBKR signing environments; each maps to its own OAuth realm."""

    SANDBOX = "sandbox"
    PRODUCTION = "production"

    @property
    def realm(self) -> str:
        return "limited_poa" if self is Environment.PRODUCTION else "test_realm"


class IBKRSettings(BaseSettings):
    """OAuth settings loaded from environment variables or a ``.env`` file.

    Each key can be supplied either as a path to a PEM file or as inline PEM
    content (inline content wins). Diffie-Hellman parameters can also be given
    as a hex prime plus generator instead of a ``DH PARAMETERS`` PEM.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    environment: str = Field(default="sandbox", alias="IBKR_ENVIRONMENT")
    base_url: str = Field(default=DEFAULT_BASE_URL, alias="IBKR_BASE_URL")
    timeout: int = Field(default=30, alias="IBKR_TIMEOUT")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, alias="IBKR_USER_AGENT")
    log_level: str = Field(default="INFO", alias="IBKR_LOG_LEVEL")

    consumer_key: str | None = Field(default=None, alias="IBKR_CONSUMER_KEY")
    access_token: str | None = Field(default=None, alias="IBKR_ACCESS_TOKEN")
    access_token_secret: str | None = Field(
        default=None, alias="IBKR_ACCESS_TOKEN_SECRET")

    encryption_key_path: Path | None = Field(
        default=None, alias="IBKR_ENCRYPTION_KEY_PATH")
    encryption_key_content: str | None = Field(
        default=None, alias="IBKR_ENCRYPTION_KEY_CONTENT")
    signature_key_path: Path | None = Field(
        default=None, alias="IBKR_SIGNATURE_KEY_PATH")
    signature_key_content: str | None = Field(
        default=None, alias="IBKR_SIGNATURE_KEY_CONTENT")
    dh_param_path: Path | None = Field(default=None, alias="IBKR_DH_PARAM_PATH")
    dh_param_content: str | None = Field(
        default=None, alias="IBKR_DH_PARAM_CONTENT")
    dh_prime: str | None = Field(default=None, alias="IBKR_DH_PRIME")
    dh_generator: int = Field(default=2, alias="IBKR_DH_GENERATOR")


@dataclass(frozen=True, slots=True)
class DHParameters:
    """Diffie-Hellman group parameters ``(p, g)``."""

    prime: int
    generator: int = 2

    @classmethod
    def from_pem(cls, content: str) -> "DHParameters":
        """Parse a PKCS#3 ``DH PARAMETERS`` PEM block."""

        try:
            der, marker, _ = PEM.decode(content)
            if marker != "DH PARAMETERS":
                raise ValueError(f"unexpected PEM block {marker!r}")
            sequence = DerSequence().decode(der)
            prime, generator = int(sequence[0]), int(sequence[1])
        except (ValueError, IndexError, TypeError) as exc:
            raise ConfigurationError(
                f"Invalid DH parameters: {exc}", kind=ErrorKind.INVALID_KEY) from exc
        return cls(prime=prime, generator=generator)

    @classmethod
    def from_hex(cls, prime_hex: str, generator: int = 2) -> "DHParameters":
        try:
            prime = int(prime_hex.strip().removeprefix("0x"), 16)
        except ValueError as exc:
            raise ConfigurationError(
                f"Invalid DH prime: {exc}", kind=ErrorKind.INVALID_KEY) from exc
        return cls(prime=prime, generator=generator)


@dataclass(frozen=True, slots=True)
class OAuthKeys:
    """Loaded key material used for the live session token handshake."""

    encryption_key: RSA.RsaKey
    signature_key: RSA.RsaKey
    dh_params: DHParameters


@dataclass(frozen=True, slots=True)
class OAuthConfig:
    """Validated, immutable configuration shared by the OAuth components.

    Build it with :meth:`from_settings` to validate credentials and load keys
    up front; a configuration change means constructing a new instance.
    """

    consumer_key: str
    access_token: str
    access_token_secret: str
    keys: OAuthKeys
    environment: Environment = Environment.SANDBOX
    base_url: str = DEFAULT_BASE_URL
    timeout: int = 30
    user_agent: str = DEFAULT_USER_AGENT

    @property
    def realm(self) -> str:
        return self.environment.realm

    @property
    def production(self) -> bool:
        return self.environment is Environment.PRODUCTION

    @property
    def sandbox(self) -> bool:
        return self.environment is Environment.SANDBOX

    @property
    def live_session_token_url(self) -> str:
        return self.url_for(LIVE_SESSION_TOKEN_PATH)

    def url_for(self, path: str) -> str:
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url.rstrip('/')}{path}"

    @classmethod
    def from_settings(cls, settings: IBKRSettings | None = None) -> "OAuthConfig":
        """Validate ``settings`` and load every key, failing fast on problems."""

        settings = settings or IBKRSettings()
        errors: list[str] = []
        for name in ("consumer_key", "access_token", "access_token_secret"):
            if not getattr(settings, name):
                errors.append(f"{name} is required")
        try:
            environment = Environment(settings.environment.lower())
        except ValueError:
            environment = None
            errors.append("environment must be 'sandbox' or 'production'")
        for problem in (
            _source_problem("encryption key", settings.encryption_key_content,
                            settings.encryption_key_path, "path or content"),
            _source_problem("signature key", settings.signature_key_content,
                            settings.signature_key_path, "path or content"),
            None if settings.dh_prime else _source_problem(
                "DH parameters", settings.dh_param_content,
                settings.dh_param_path, "path, content or prime"),
        ):
            if problem:
                errors.append(problem)
        if errors:
            kind = ErrorKind.INVALID_ENVIRONMENT if environment is None and len(
                errors) == 1 else ErrorKind.MISSING_CREDENTIALS
            raise ConfigurationError(
                f"Configuration invalid: {', '.join(errors)}",
                kind=kind,
                details={"errors": errors},
            )

        if settings.dh_prime:
            dh_params = DHParameters.from_hex(
                settings.dh_prime, settings.dh_generator)
        else:
            dh_params = DHParameters.from_pem(_read_source(
                "DH parameters", settings.dh_param_content, settings.dh_param_path))
        keys = OAuthKeys(
            encryption_key=load_rsa_key(
                "encryption key",
                _read_source("encryption key", settings.encryption_key_content,
                             settings.encryption_key_path),
            ),
            signature_key=load_rsa_key(
                "signature key",
                _read_source("signature key", settings.signature_key_content,
                             settings.signature_key_path),
            ),
            dh_params=dh_params,
        )
        logger.debug("Loaded OAuth key material for %s environment",
                     environment.value)
        return cls(
            consumer_key=settings.consumer_key,
            access_token=settings.access_token,
            access_token_secret=settings.access_token_secret,
            keys=keys,
            environment=environment,
            base_url=settings.base_url.rstrip("/"),
            timeout=settings.timeout,
            user_agent=settings.user_agent,
        )


def load_rsa_key(label: str, content: str) -> RSA.RsaKey:
    """Import a private RSA key, raising :class:`ConfigurationError` on failure."""

    try:
        key = RSA.import_key(content)
    except (ValueError, IndexError, TypeError) as exc:
        raise ConfigurationError(
            f"Invalid {label}: {exc}", kind=ErrorKind.INVALID_KEY) from exc
    if not key.has_private():
        raise ConfigurationError(
            f"Invalid {label}: a private key is required", kind=ErrorKind.INVALID_KEY)
    return key


def _source_problem(label: str, content: str | None, path: Path | None, options: str) -> str | None:
    if content:
        return None
    if path is None:
        return f"{label} must be provided ({options})"
    if not path.is_file():
        return f"{label} file not found: {path}"
    return None


def _read_source(label: str, content: str | None, path: Path | None) -> str:
    if content:
        return content
    if path is not None and path.exists():
        return path.read_text(encoding="utf-8")
    raise ConfigurationError(
        f"{label} not found: {path or 'no path provided'}",
        kind=ErrorKind.MISSING_CREDENTIALS,
    )


__all__ = [
    "DHParameters",
    "Environment",
    "IBKRSettings",
    "LIVE_SESSION_TOKEN_PATH",
    "OAuthConfig",
    "OAuthKeys",
    "load_rsa_key",
]

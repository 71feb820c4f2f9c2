"""Client for the Interactive Brokers Client Portal Web API with OAuth signing."""

from importlib.metadata import version

from .client import IBKRClient
from .config import Environment, IBKRSettings, OAuthConfig
from .errors import ApiError, AuthenticationError, ConfigurationError, ErrorKind, IBKRError

__all__ = [
    "ApiError",
    "AuthenticationError",
    "ConfigurationError",
    "Environment",
    "ErrorKind",
    "IBKRClient",
    "IBKRError",
    "IBKRSettings",
    "OAuthConfig",
    "__version__",
]

try:
    __version__ = version("ibkr-oauth")
except Exception:  # pragma: no cover - package not installed in dev mode yet.
    __version__ = "0.0.0"

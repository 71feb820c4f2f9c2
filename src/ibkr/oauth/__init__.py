"""OAuth 1.0a live session token negotiation and request signing."""

from .authenticator import Authenticator
from .headers import OAuthHeaders, authorization_value, format_oauth_header
from .parameters import ApiParameters, ApiRequest, AuthenticationParameters
from .signature import SignatureGenerator
from .token import LiveSessionToken

__all__ = [
    "ApiParameters",
    "ApiRequest",
    "AuthenticationParameters",
    "Authenticator",
    "LiveSessionToken",
    "OAuthHeaders",
    "SignatureGenerator",
    "authorization_value",
    "format_oauth_header",
]

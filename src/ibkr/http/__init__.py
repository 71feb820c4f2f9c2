"""HTTP transport for the Client Portal Web API."""

from .client import IBKRHttpClient, is_success, parse_body

__all__ = ["IBKRHttpClient", "is_success", "parse_body"]

"""Access token providers for the management API."""

from .token_provider import ClientCredentialsTokenProvider, StaticTokenProvider, TokenProvider

__all__ = [
    "ClientCredentialsTokenProvider",
    "StaticTokenProvider",
    "TokenProvider",
]

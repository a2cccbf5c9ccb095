"""REST resource client and its retry wrapper."""

from .client import RestClient, encode_query, resolve_url
from .retry import RetryRestClient

__all__ = [
    "RestClient",
    "RetryRestClient",
    "encode_query",
    "resolve_url",
]

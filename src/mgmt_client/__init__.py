"""Async client for the management API jobs endpoints."""

__version__ = "0.1.0"

from .auth import ClientCredentialsTokenProvider, StaticTokenProvider, TokenProvider
from .errors import (
    HttpError,
    InvalidArgumentError,
    ManagementError,
    RestApiError,
    TransportError,
)
from .management import JobsManager, ManagementClient
from .models import ClientOptions, ExportFormat, RetryPolicy, UserExportField

__all__ = [
    "ClientCredentialsTokenProvider",
    "ClientOptions",
    "ExportFormat",
    "HttpError",
    "InvalidArgumentError",
    "JobsManager",
    "ManagementClient",
    "ManagementError",
    "RestApiError",
    "RetryPolicy",
    "StaticTokenProvider",
    "TokenProvider",
    "TransportError",
    "UserExportField",
    "__version__",
]

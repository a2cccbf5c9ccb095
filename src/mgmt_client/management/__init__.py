"""Management API facades."""

from .callbacks import settle
from .client import ManagementClient
from .jobs import JobsManager, UsersImportForm, build_users_import_form

__all__ = [
    "JobsManager",
    "ManagementClient",
    "UsersImportForm",
    "build_users_import_form",
    "settle",
]

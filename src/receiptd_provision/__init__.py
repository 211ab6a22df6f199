"""
receiptd host provisioning.

Prepares a host for the receiptd PDF receipt daemon: service account,
log/data directories, font assets, init script and configuration file.
"""

__all__ = [
    "Provisioner",
    "ProvisionConfig",
    "build_provision_config",
    "ProvisionError",
    "AccountCreationError",
    "FilesystemError",
    "PrivilegeError",
]

from .config import ProvisionConfig, build_provision_config
from .errors import AccountCreationError, FilesystemError, PrivilegeError, ProvisionError
from .provisioner import Provisioner

"""Errors raised while provisioning a host for receiptd."""

from __future__ import annotations

from typing import Optional


class ProvisionError(Exception):
    """Base class; ``step`` is filled in once the provisioner attributes the failure."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path
        self.step: Optional[str] = None

    def __str__(self) -> str:
        prefix = f"[{self.step}] " if self.step else ""
        suffix = f" ({self.path})" if self.path else ""
        return f"{prefix}{self.message}{suffix}"


class AccountCreationError(ProvisionError):
    """Service account could not be created or conflicts with an existing entry."""


class FilesystemError(ProvisionError):
    """Path conflict, missing source, permission denial or other I/O failure."""


class PrivilegeError(ProvisionError):
    """The run needs super-user privilege and does not have it."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from ..errors import ProvisionError


@dataclass(frozen=True)
class ServiceAccountSpec:
    name: str = "receiptd"
    home: str = "/nonexistent"
    comment: str = "PDF Receipt Making Daemon"
    login_class: str = "daemon"
    shell: str = "/sbin/nologin"
    uid_min: int = 100
    uid_max: int = 999


@dataclass(frozen=True)
class AccountRecord:
    name: str
    uid: int
    gid: int
    home: str
    shell: str


@dataclass(frozen=True)
class DirectorySpec:
    path: str
    mode: int = 0o755


@dataclass(frozen=True)
class TreeInstallSpec:
    source: str
    target: str
    mode: int = 0o755


@dataclass(frozen=True)
class FileInstallSpec:
    source: str
    target: str
    mode: int
    preserve_existing: bool = False


STATUS_OK = "ok"
STATUS_CHANGED = "changed"
STATUS_PENDING = "pending"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"


@dataclass
class StepResult:
    name: str
    status: str = STATUS_OK
    changes: List[str] = field(default_factory=list)
    error: Optional[ProvisionError] = None

    def summary(self) -> str:
        if self.status == STATUS_FAILED and self.error is not None:
            return f"{self.name}: failed - {self.error.message}"
        if self.changes:
            return f"{self.name}: {self.status} ({len(self.changes)} change(s))"
        return f"{self.name}: {self.status}"


@dataclass
class ProvisionReport:
    steps: List[StepResult] = field(default_factory=list)
    dry_run: bool = False

    @property
    def failed_step(self) -> Optional[StepResult]:
        for step in self.steps:
            if step.status == STATUS_FAILED:
                return step
        return None

    @property
    def succeeded(self) -> bool:
        return self.failed_step is None

    @property
    def changed(self) -> bool:
        return any(s.status == STATUS_CHANGED for s in self.steps)

    @property
    def pending(self) -> List[str]:
        """All changes a dry run would apply, prefixed with their step name."""
        out: List[str] = []
        for step in self.steps:
            if step.status == STATUS_PENDING:
                out.extend(f"{step.name}: {c}" for c in step.changes)
        return out

    def raise_for_failure(self) -> None:
        failed = self.failed_step
        if failed is not None and failed.error is not None:
            raise failed.error

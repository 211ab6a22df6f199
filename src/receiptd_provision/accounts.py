"""Service account lookup, uid allocation and creation."""

from __future__ import annotations

import grp
import os
import pwd
import subprocess
import sys
from typing import Iterable, List, Optional, Set

from .domain.models import (
    STATUS_CHANGED,
    STATUS_PENDING,
    AccountRecord,
    ServiceAccountSpec,
    StepResult,
)
from .errors import AccountCreationError
from .logging import get_logger

LOG = get_logger("accounts")

STEP_NAME = "ensure-account"

NOLOGIN_SHELLS = {
    "/sbin/nologin",
    "/usr/sbin/nologin",
    "/bin/false",
    "/usr/bin/false",
}


class AccountDatabase:
    """Read/append access to a host's user and group database."""

    def lookup(self, name: str) -> Optional[AccountRecord]:
        raise NotImplementedError

    def group_gid(self, name: str) -> Optional[int]:
        raise NotImplementedError

    def group_exists(self, name: str) -> bool:
        return self.group_gid(name) is not None

    def used_uids(self) -> Set[int]:
        raise NotImplementedError

    def used_gids(self) -> Set[int]:
        raise NotImplementedError

    def create(self, spec: ServiceAccountSpec, uid: int) -> AccountRecord:
        raise NotImplementedError


def useradd_command(
    spec: ServiceAccountSpec,
    uid: int,
    *,
    useradd: str = "useradd",
    platform: Optional[str] = None,
) -> List[str]:
    """Build the useradd invocation for the running platform.

    BSD useradd supports login classes and ``-g =uid``; shadow-utils on
    Linux gets the closest equivalent (system account, user group, no home).
    """
    plat = platform or sys.platform
    if plat.startswith(("openbsd", "netbsd", "freebsd")):
        return [
            useradd,
            "-d", spec.home,
            "-c", spec.comment,
            "-g", "=uid",
            "-L", spec.login_class,
            "-s", spec.shell,
            "-u", str(uid),
            spec.name,
        ]
    return [
        useradd,
        "-r",
        "-M",
        "-d", spec.home,
        "-c", spec.comment,
        "-U",
        "-s", spec.shell,
        "-u", str(uid),
        spec.name,
    ]


class SystemAccountDatabase(AccountDatabase):
    """The live host database: pwd/grp for reads, useradd for creation."""

    def __init__(self, useradd: str = "useradd") -> None:
        self.useradd = useradd

    def lookup(self, name: str) -> Optional[AccountRecord]:
        try:
            entry = pwd.getpwnam(name)
        except KeyError:
            return None
        return AccountRecord(
            name=entry.pw_name,
            uid=entry.pw_uid,
            gid=entry.pw_gid,
            home=entry.pw_dir,
            shell=entry.pw_shell,
        )

    def group_gid(self, name: str) -> Optional[int]:
        try:
            return grp.getgrnam(name).gr_gid
        except KeyError:
            return None

    def used_uids(self) -> Set[int]:
        return {p.pw_uid for p in pwd.getpwall()}

    def used_gids(self) -> Set[int]:
        return {g.gr_gid for g in grp.getgrall()}

    def create(self, spec: ServiceAccountSpec, uid: int) -> AccountRecord:
        cmd = useradd_command(spec, uid, useradd=self.useradd)
        LOG.debug(f"Running: {' '.join(cmd)}")
        try:
            subprocess.run(cmd, check=True, capture_output=True, text=True)
        except FileNotFoundError as exc:
            raise AccountCreationError(f"useradd binary not found: {exc}") from exc
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or exc.stdout or "").strip() or f"exit code {exc.returncode}"
            raise AccountCreationError(f"useradd failed for '{spec.name}': {detail}") from exc
        record = self.lookup(spec.name)
        if record is None:
            raise AccountCreationError(f"useradd reported success but '{spec.name}' is not in the user database")
        return record


class PasswdFileDatabase(AccountDatabase):
    """passwd/group files of a staged root (``<root>/etc/passwd``, ``<root>/etc/group``).

    Used when provisioning a root other than ``/``, where useradd would
    modify the wrong database. Login classes are not representable here.
    """

    def __init__(self, host_root: str) -> None:
        self.etc_dir = os.path.join(os.path.abspath(host_root), "etc")
        self.passwd_path = os.path.join(self.etc_dir, "passwd")
        self.group_path = os.path.join(self.etc_dir, "group")

    @staticmethod
    def _read_rows(path: str) -> List[List[str]]:
        rows: List[List[str]] = []
        try:
            with open(path, "r", encoding="utf-8") as f:
                for raw in f:
                    line = raw.strip()
                    if not line or line.startswith("#"):
                        continue
                    rows.append(line.split(":"))
        except FileNotFoundError:
            return rows
        except OSError as exc:
            raise AccountCreationError(f"Cannot read account database: {exc}", path=path) from exc
        return rows

    @staticmethod
    def _int_column(rows: Iterable[List[str]], index: int) -> Set[int]:
        out: Set[int] = set()
        for row in rows:
            if len(row) > index and row[index].strip().isdigit():
                out.add(int(row[index]))
        return out

    def lookup(self, name: str) -> Optional[AccountRecord]:
        for row in self._read_rows(self.passwd_path):
            if len(row) >= 7 and row[0] == name:
                try:
                    return AccountRecord(
                        name=row[0],
                        uid=int(row[2]),
                        gid=int(row[3]),
                        home=row[5],
                        shell=row[6],
                    )
                except ValueError as exc:
                    raise AccountCreationError(
                        f"Malformed passwd entry for '{name}'", path=self.passwd_path
                    ) from exc
        return None

    def group_gid(self, name: str) -> Optional[int]:
        for row in self._read_rows(self.group_path):
            if len(row) >= 3 and row[0] == name and row[2].strip().isdigit():
                return int(row[2])
        return None

    def used_uids(self) -> Set[int]:
        return self._int_column(self._read_rows(self.passwd_path), 2)

    def used_gids(self) -> Set[int]:
        return self._int_column(self._read_rows(self.group_path), 2)

    @staticmethod
    def _append_line(path: str, line: str) -> None:
        try:
            with open(path, "rb") as f:
                data = f.read()
        except FileNotFoundError:
            data = b""
        prefix = "\n" if data and not data.endswith(b"\n") else ""
        with open(path, "a", encoding="utf-8") as f:
            f.write(prefix + line + "\n")

    def create(self, spec: ServiceAccountSpec, uid: int) -> AccountRecord:
        record = AccountRecord(name=spec.name, uid=uid, gid=uid, home=spec.home, shell=spec.shell)
        try:
            os.makedirs(self.etc_dir, exist_ok=True)
            self._append_line(self.group_path, f"{spec.name}:*:{uid}:")
            self._append_line(
                self.passwd_path,
                f"{spec.name}:*:{uid}:{uid}:{spec.comment}:{spec.home}:{spec.shell}",
            )
        except OSError as exc:
            raise AccountCreationError(f"Cannot write account database: {exc}", path=self.etc_dir) from exc
        return record


def account_database_for(host_root: str, useradd: str = "useradd") -> AccountDatabase:
    if os.path.abspath(host_root or "/") == os.path.abspath(os.sep):
        return SystemAccountDatabase(useradd=useradd)
    return PasswdFileDatabase(host_root)


def allocate_uid(spec: ServiceAccountSpec, used_uids: Set[int], used_gids: Set[int]) -> int:
    """Return the lowest id in [uid_min, uid_max] free both as uid and as gid.

    The primary group shares the number with the account, so a gid clash
    disqualifies the id as well.
    """
    if spec.uid_min < 1 or spec.uid_min > spec.uid_max:
        raise AccountCreationError(f"Invalid uid range {spec.uid_min}..{spec.uid_max}")
    for candidate in range(spec.uid_min, spec.uid_max + 1):
        if candidate not in used_uids and candidate not in used_gids:
            return candidate
    raise AccountCreationError(f"No free uid left in range {spec.uid_min}..{spec.uid_max}")


def incompatibilities(
    record: AccountRecord,
    spec: ServiceAccountSpec,
    group_gid: Optional[int] = None,
) -> List[str]:
    problems: List[str] = []
    if not spec.uid_min <= record.uid <= spec.uid_max:
        problems.append(f"uid {record.uid} outside {spec.uid_min}..{spec.uid_max}")
    if record.shell not in NOLOGIN_SHELLS and record.shell != spec.shell:
        problems.append(f"shell '{record.shell}' permits interactive login")
    if group_gid is None:
        problems.append(f"group '{spec.name}' does not exist")
    elif record.gid != group_gid:
        problems.append(f"primary gid {record.gid} is not group '{spec.name}' ({group_gid})")
    return problems


def ensure_service_account(
    db: AccountDatabase,
    spec: ServiceAccountSpec,
    *,
    dry_run: bool = False,
) -> StepResult:
    """Create the service account unless a compatible one already exists."""
    result = StepResult(name=STEP_NAME)
    existing = db.lookup(spec.name)
    if existing is not None:
        problems = incompatibilities(existing, spec, db.group_gid(spec.name))
        if problems:
            raise AccountCreationError(
                f"Existing account '{spec.name}' is incompatible: " + "; ".join(problems)
            )
        if existing.home != spec.home:
            LOG.warning(f"Account '{spec.name}' has home '{existing.home}' (expected '{spec.home}'); leaving as is")
        LOG.info(f"Account '{spec.name}' already present (uid={existing.uid}, gid={existing.gid})")
        return result

    if db.group_exists(spec.name):
        raise AccountCreationError(f"Group '{spec.name}' exists without a matching account")

    uid = allocate_uid(spec, db.used_uids(), db.used_gids())
    change = f"create account '{spec.name}' uid={uid} shell={spec.shell} home={spec.home}"
    result.changes.append(change)
    if dry_run:
        LOG.info(f"[dry-run] would {change}")
        result.status = STATUS_PENDING
        return result

    record = db.create(spec, uid)
    if not spec.uid_min <= record.uid <= spec.uid_max:
        raise AccountCreationError(f"Account '{spec.name}' was created with uid {record.uid} outside the range")
    LOG.info(f"Created account '{record.name}' (uid={record.uid}, gid={record.gid})")
    result.status = STATUS_CHANGED
    return result

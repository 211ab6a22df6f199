"""Idempotent filesystem operations: directories, ownership, asset trees and files."""

from __future__ import annotations

import filecmp
import os
import shutil
import stat
import tempfile
from typing import Iterable, List, Optional, Tuple

from .accounts import AccountDatabase
from .domain.models import (
    DirectorySpec,
    FileInstallSpec,
    TreeInstallSpec,
)
from .errors import FilesystemError
from .logging import get_logger

LOG = get_logger("filesystem")


def _mode_of(path: str) -> int:
    return stat.S_IMODE(os.stat(path).st_mode)


def _chmod(path: str, mode: int) -> None:
    try:
        os.chmod(path, mode)
    except OSError as exc:
        raise FilesystemError(f"Cannot set mode {mode:04o}: {exc.strerror or exc}", path=path) from exc


def _record(changes: List[str], change: str, dry_run: bool) -> None:
    changes.append(change)
    if dry_run:
        LOG.info(f"[dry-run] would {change}")
    else:
        LOG.info(change)


def _copy_into_place(source: str, target: str, mode: int) -> None:
    """Copy source over target via a temp file in the target directory and rename.

    Works even when an existing target is read-only (e.g. a 0555 init script).
    """
    target_dir = os.path.dirname(target) or "."
    fd, tmp = tempfile.mkstemp(prefix=".receiptd-", dir=target_dir)
    os.close(fd)
    try:
        shutil.copyfile(source, tmp)
        os.chmod(tmp, mode)
        os.replace(tmp, target)
    except OSError:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def _same_content(source: str, target: str) -> bool:
    return os.path.isfile(target) and filecmp.cmp(source, target, shallow=False)


def _raise(exc: OSError) -> None:
    raise exc


# ---------------- directories ----------------
def ensure_directory(spec: DirectorySpec, *, dry_run: bool = False) -> List[str]:
    """Create spec.path (and parents) when missing and converge its mode."""
    changes: List[str] = []
    path = spec.path
    if os.path.islink(path):
        raise FilesystemError("Path is a symlink, refusing to manage it", path=path)
    if os.path.lexists(path) and not os.path.isdir(path):
        raise FilesystemError("Path exists but is not a directory", path=path)
    try:
        if not os.path.isdir(path):
            _record(changes, f"create directory {path} mode {spec.mode:04o}", dry_run)
            if dry_run:
                return changes
            os.makedirs(path, exist_ok=True)
            # makedirs honours the umask; set the mode explicitly
            os.chmod(path, spec.mode)
            return changes
        current = _mode_of(path)
        if current != spec.mode:
            _record(changes, f"chmod {path} {current:04o} -> {spec.mode:04o}", dry_run)
            if not dry_run:
                os.chmod(path, spec.mode)
    except OSError as exc:
        raise FilesystemError(f"Cannot create directory: {exc.strerror or exc}", path=path) from exc
    return changes


# ---------------- ownership ----------------
def set_ownership(
    paths: Iterable[str],
    db: AccountDatabase,
    account_name: str,
    *,
    dry_run: bool = False,
    account_pending: bool = False,
) -> List[str]:
    """chown every path to the account's uid and primary gid.

    The account and every path are resolved before anything is changed, so
    a missing account, a missing path or a symlink leaves ownership untouched.
    """
    targets = list(paths)
    changes: List[str] = []
    record = db.lookup(account_name)
    if record is None:
        if dry_run and account_pending:
            for path in targets:
                _record(changes, f"chown {path} {account_name}:{account_name}", dry_run)
            return changes
        raise FilesystemError(f"Account '{account_name}' does not exist; cannot assign ownership")

    todo: List[Tuple[str, str]] = []
    for path in targets:
        try:
            st = os.lstat(path)
        except FileNotFoundError:
            if dry_run:
                todo.append((path, f"chown {path} {account_name}:{account_name}"))
                continue
            raise FilesystemError("Cannot assign ownership: path does not exist", path=path)
        except OSError as exc:
            raise FilesystemError(f"Cannot inspect path: {exc.strerror or exc}", path=path) from exc
        if stat.S_ISLNK(st.st_mode):
            raise FilesystemError("Path is a symlink, refusing to change its owner", path=path)
        if st.st_uid != record.uid or st.st_gid != record.gid:
            todo.append(
                (path, f"chown {path} {st.st_uid}:{st.st_gid} -> {record.uid}:{record.gid} ({account_name})")
            )

    for path, change in todo:
        _record(changes, change, dry_run)
        if dry_run:
            continue
        try:
            os.chown(path, record.uid, record.gid)
        except OSError as exc:
            raise FilesystemError(f"Cannot change owner: {exc.strerror or exc}", path=path) from exc
    return changes


# ---------------- asset trees ----------------
def _normalize_tree_modes(root: str, mode: int, changes: List[str], dry_run: bool) -> None:
    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise):
        for entry in [dirpath] + [os.path.join(dirpath, n) for n in sorted(filenames)]:
            if os.path.islink(entry):
                continue
            current = _mode_of(entry)
            if current != mode:
                _record(changes, f"chmod {entry} {current:04o} -> {mode:04o}", dry_run)
                if not dry_run:
                    os.chmod(entry, mode)
        dirnames.sort()


def install_tree(spec: TreeInstallSpec, *, dry_run: bool = False) -> List[str]:
    """Recursively copy spec.source into spec.target, then normalize modes.

    Files with identical content are not copied again. Nothing is rolled
    back when a copy fails halfway.
    """
    changes: List[str] = []
    if not os.path.isdir(spec.source):
        raise FilesystemError("Asset source directory is missing", path=spec.source)
    if os.path.lexists(spec.target) and not os.path.isdir(spec.target):
        raise FilesystemError("Asset target exists but is not a directory", path=spec.target)

    current: Optional[str] = None
    try:
        for dirpath, dirnames, filenames in os.walk(spec.source, onerror=_raise):
            dirnames.sort()
            rel = os.path.relpath(dirpath, spec.source)
            target_dir = os.path.normpath(os.path.join(spec.target, rel))
            current = target_dir
            if not os.path.isdir(target_dir):
                _record(changes, f"create directory {target_dir}", dry_run)
                if not dry_run:
                    os.makedirs(target_dir, exist_ok=True)
            for name in sorted(filenames):
                src = os.path.join(dirpath, name)
                dst = os.path.join(target_dir, name)
                current = dst
                if _same_content(src, dst):
                    continue
                _record(changes, f"copy {src} -> {dst}", dry_run)
                if not dry_run:
                    _copy_into_place(src, dst, spec.mode)
        current = spec.target
        if os.path.isdir(spec.target):
            _normalize_tree_modes(spec.target, spec.mode, changes, dry_run)
    except OSError as exc:
        raise FilesystemError(
            f"Asset installation failed: {exc.strerror or exc}", path=exc.filename or current
        ) from exc
    return changes


# ---------------- single files ----------------
def install_file(spec: FileInstallSpec, *, dry_run: bool = False) -> List[str]:
    """Place spec.source at spec.target and set spec.mode.

    With preserve_existing an existing target keeps its content and only
    has its mode corrected.
    """
    changes: List[str] = []
    if not os.path.isfile(spec.source):
        raise FilesystemError("Template file is missing", path=spec.source)
    if os.path.isdir(spec.target):
        raise FilesystemError("Install target is a directory", path=spec.target)
    parent = os.path.dirname(spec.target)
    if not os.path.isdir(parent):
        raise FilesystemError("Parent directory of install target does not exist", path=parent)

    try:
        exists = os.path.isfile(spec.target)
        if exists and spec.preserve_existing:
            LOG.info(f"Keeping existing {spec.target}")
        elif not exists or not _same_content(spec.source, spec.target):
            _record(changes, f"install {spec.source} -> {spec.target} mode {spec.mode:04o}", dry_run)
            if not dry_run:
                _copy_into_place(spec.source, spec.target, spec.mode)
            return changes
        current = _mode_of(spec.target)
        if current != spec.mode:
            _record(changes, f"chmod {spec.target} {current:04o} -> {spec.mode:04o}", dry_run)
            if not dry_run:
                _chmod(spec.target, spec.mode)
    except OSError as exc:
        raise FilesystemError(f"Cannot install file: {exc.strerror or exc}", path=spec.target) from exc
    return changes

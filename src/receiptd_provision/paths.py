import os
from typing import Optional

from .logging import get_logger

log = get_logger("paths")

# Templates shipped with the repository, relative to a source root.
SOURCE_SUBDIR = os.path.join("share", "receiptd")
SOURCE_MARKER = "receiptd.rc.d"


def expand_abs(path: str) -> str:
    """Expand env vars and ~ then return absolute path."""
    return os.path.abspath(os.path.expanduser(os.path.expandvars(path or "")))


def under_root(host_root: str, path: str) -> str:
    """Rebase an absolute host path (e.g. ``/etc/rc.d/receiptd``) under host_root.

    With host_root ``/`` the path is returned unchanged.
    """
    root = expand_abs(host_root or "/")
    rel = path.lstrip("/")
    return os.path.normpath(os.path.join(root, rel))


def _find_upwards(start_dir: str) -> Optional[str]:
    """Return the first directory holding the template marker, walking up from start_dir.

    Both ``<dir>/share/receiptd/receiptd.rc.d`` and a bare
    ``<dir>/receiptd.rc.d`` are accepted.
    """
    d = os.path.abspath(start_dir or ".")
    while True:
        for candidate in (os.path.join(d, SOURCE_SUBDIR), d):
            if os.path.isfile(os.path.join(candidate, SOURCE_MARKER)):
                return candidate
        parent = os.path.dirname(d)
        if parent == d:
            return None
        d = parent


def find_source_dir(start_dir: Optional[str] = None) -> Optional[str]:
    """Locate the directory holding fonts/ and the receiptd templates.

    Searches upwards from start_dir (default: CWD), then from this module's
    location for the installed-package case.
    """
    found = _find_upwards(start_dir or os.getcwd())
    if found:
        log.debug(f"Source templates found at {found}")
        return found
    module_dir = os.path.dirname(os.path.abspath(__file__))
    found = _find_upwards(module_dir)
    if found:
        log.debug(f"Source templates found next to the package at {found}")
        return found
    log.debug("No source template directory found")
    return None

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from dotenv import dotenv_values

from .domain.models import ServiceAccountSpec
from .layout import FONTS_SOURCE
from .logging import get_logger
from .paths import expand_abs, find_source_dir

log = get_logger("config")

ENV_PREFIX = "RECEIPTD_"
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _find_upwards(start_dir: str, filename: str) -> Optional[str]:
    """Return first matching file found when walking up from start_dir."""
    d = os.path.abspath(start_dir or ".")
    while True:
        candidate = os.path.join(d, filename)
        if os.path.isfile(candidate):
            return candidate
        parent = os.path.dirname(d)
        if parent == d:
            return None
        d = parent


def load_settings(dotenv_dir: str) -> Dict[str, str]:
    """Return RECEIPTD_* settings; the process environment wins over .env."""
    settings: Dict[str, str] = {}
    path = _find_upwards(dotenv_dir, ".env")
    if path:
        values = dotenv_values(path)
        for k, v in values.items():
            if k.startswith(ENV_PREFIX) and v is not None:
                settings[k] = v.strip()
        log.debug(f"Loaded {len(settings)} receiptd setting(s) from .env at {path}")
    else:
        log.debug(f"No .env found starting from: {os.path.abspath(dotenv_dir)}")
    for k, v in os.environ.items():
        if k.startswith(ENV_PREFIX):
            settings[k] = v.strip()
    return settings


def _parse_bool(name: str, value: str) -> bool:
    low = value.strip().lower()
    if low in _TRUE:
        return True
    if low in _FALSE:
        return False
    log.error(f"{name} must be a boolean (got '{value}')")
    raise SystemExit(2)


def _parse_int(name: str, value: str) -> int:
    try:
        return int(str(value).strip())
    except ValueError:
        log.error(f"{name} must be an integer (got '{value}')")
        raise SystemExit(2)


@dataclass
class ProvisionConfig:
    host_root: str
    source_dir: str
    account: ServiceAccountSpec = field(default_factory=ServiceAccountSpec)
    install_config: bool = True
    overwrite_config: bool = False
    useradd: str = "useradd"
    dry_run: bool = False


def build_provision_config(args, *, script_dir: str) -> ProvisionConfig:
    """Create a ProvisionConfig from CLI args, env and .env, logging the result.

    Precedence: CLI flag > environment > .env > default.
    """
    settings = load_settings(script_dir)

    def pick(attr: str, key: str) -> Optional[str]:
        value = getattr(args, attr, None)
        if value is not None:
            return str(value)
        return settings.get(ENV_PREFIX + key)

    host_root = expand_abs(pick("host_root", "HOST_ROOT") or "/")

    source_raw = pick("source_dir", "SOURCE_DIR")
    source_dir = expand_abs(source_raw) if source_raw else find_source_dir(script_dir)
    if not source_dir or not os.path.isdir(source_dir):
        log.error(
            "Source directory with fonts/ and receiptd templates not found. "
            "Provide --source-dir or set RECEIPTD_SOURCE_DIR."
        )
        raise SystemExit(2)
    fonts_dir = os.path.join(source_dir, FONTS_SOURCE)
    if not os.path.isdir(fonts_dir):
        log.error(
            f"Source directory {source_dir} has no {FONTS_SOURCE}/ directory. "
            "Provide --source-dir or set RECEIPTD_SOURCE_DIR."
        )
        raise SystemExit(2)

    defaults = ServiceAccountSpec()
    uid_min_raw = pick("uid_min", "UID_MIN")
    uid_max_raw = pick("uid_max", "UID_MAX")
    uid_min = _parse_int("uid-min", uid_min_raw) if uid_min_raw is not None else defaults.uid_min
    uid_max = _parse_int("uid-max", uid_max_raw) if uid_max_raw is not None else defaults.uid_max
    if uid_min < 1 or uid_min > uid_max:
        log.error(f"Invalid uid range {uid_min}..{uid_max}")
        raise SystemExit(2)
    account = ServiceAccountSpec(uid_min=uid_min, uid_max=uid_max)

    if getattr(args, "skip_config", False):
        install_config = False
    else:
        raw = settings.get(ENV_PREFIX + "INSTALL_CONFIG")
        install_config = _parse_bool("RECEIPTD_INSTALL_CONFIG", raw) if raw is not None else True

    if getattr(args, "overwrite_config", False):
        overwrite_config = True
    else:
        raw = settings.get(ENV_PREFIX + "OVERWRITE_CONFIG")
        overwrite_config = _parse_bool("RECEIPTD_OVERWRITE_CONFIG", raw) if raw is not None else False

    useradd = settings.get(ENV_PREFIX + "USERADD") or "useradd"
    dry_run = bool(getattr(args, "dry_run", False))

    log.info("Provisioning configuration prepared")
    log.info(f"Host root          : {host_root}")
    log.info(f"Source directory   : {source_dir}")
    log.info(f"UID range          : {uid_min}..{uid_max}")
    log.info(f"Install config     : {install_config} (overwrite: {overwrite_config})")
    log.info(f"Dry run            : {dry_run}")

    return ProvisionConfig(
        host_root=host_root,
        source_dir=source_dir,
        account=account,
        install_config=install_config,
        overwrite_config=overwrite_config,
        useradd=useradd,
        dry_run=dry_run,
    )

"""Fixed target locations of the receiptd footprint on a host."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .paths import under_root

LOG_DIR = "/var/log/receiptd"
DATA_DIR = "/var/receiptd"
INIT_SCRIPT = "/etc/rc.d/receiptd"
CONFIG_FILE = "/etc/receiptd.conf"

DIR_MODE = 0o755
ASSET_MODE = 0o755
LOGO_MODE = 0o644
INIT_SCRIPT_MODE = 0o555
CONFIG_MODE = 0o664

# Template names inside the source directory
FONTS_SOURCE = "fonts"
INIT_SCRIPT_SOURCE = "receiptd.rc.d"
CONFIG_SOURCE = "receiptd.conf"
LOGO_SOURCE = "logo.svg"


@dataclass(frozen=True)
class HostLayout:
    host_root: str
    log_dir: str
    data_dir: str
    init_script: str
    config_file: str

    @property
    def fonts_dir(self) -> str:
        return os.path.join(self.data_dir, FONTS_SOURCE)

    @property
    def logo_file(self) -> str:
        return os.path.join(self.data_dir, LOGO_SOURCE)

    @property
    def is_live_root(self) -> bool:
        return os.path.abspath(self.host_root) == os.path.abspath(os.sep)


def host_layout(host_root: str = "/") -> HostLayout:
    return HostLayout(
        host_root=host_root,
        log_dir=under_root(host_root, LOG_DIR),
        data_dir=under_root(host_root, DATA_DIR),
        init_script=under_root(host_root, INIT_SCRIPT),
        config_file=under_root(host_root, CONFIG_FILE),
    )

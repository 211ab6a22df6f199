import os
import sys
from pathlib import Path
from typing import List, Tuple

import pytest

# Ensure src/ is importable when tests run from repo root
sys.path.insert(0, os.path.abspath("src"))

from receiptd_provision.config import ProvisionConfig  # noqa: E402
from receiptd_provision.domain.models import ServiceAccountSpec  # noqa: E402


PASSWD_SEED = """root:*:0:0:Charlie &:/root:/bin/ksh
daemon:*:1:1:The devil himself:/root:/sbin/nologin
_sshd:*:100:100:sshd privsep:/var/empty:/sbin/nologin
"""

GROUP_SEED = """wheel:*:0:root
daemon:*:1:daemon
_sshd:*:100:
_spare:*:101:
"""


@pytest.fixture(autouse=True)
def _clean_receiptd_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("RECEIPTD_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def host_root(tmp_path: Path) -> Path:
    """A staged host root with /etc/rc.d and a small account database."""
    root = tmp_path / "root"
    (root / "etc" / "rc.d").mkdir(parents=True)
    (root / "etc" / "passwd").write_text(PASSWD_SEED, encoding="utf-8")
    (root / "etc" / "group").write_text(GROUP_SEED, encoding="utf-8")
    return root


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    src = tmp_path / "source"
    fonts = src / "fonts"
    (fonts / "extra").mkdir(parents=True)
    for name in ("NotoSans-Regular.ttf", "NotoSans-Bold.ttf", "NotoSansMono-Regular.ttf"):
        (fonts / name).write_bytes(b"\x00\x01\x00\x00" + name.encode())
        os.chmod(fonts / name, 0o600)
    (fonts / "extra" / "LICENSE.txt").write_text("SIL Open Font License", encoding="utf-8")
    (src / "receiptd.rc.d").write_text("#!/bin/ksh\ndaemon=/usr/local/bin/receiptd\n", encoding="utf-8")
    (src / "receiptd.conf").write_text("data_dir = /var/receiptd\n", encoding="utf-8")
    (src / "logo.svg").write_text('<svg xmlns="http://www.w3.org/2000/svg"/>', encoding="utf-8")
    return src


@pytest.fixture
def config(host_root: Path, source_dir: Path) -> ProvisionConfig:
    return ProvisionConfig(
        host_root=str(host_root),
        source_dir=str(source_dir),
        account=ServiceAccountSpec(),
    )


@pytest.fixture
def chown_calls(monkeypatch: pytest.MonkeyPatch) -> List[Tuple[str, int, int]]:
    """Record os.chown calls; they are only applied for real when running as root."""
    calls: List[Tuple[str, int, int]] = []
    real_chown = os.chown

    def _chown(path, uid, gid, *args, **kwargs):
        calls.append((str(path), uid, gid))
        if os.geteuid() == 0:
            real_chown(path, uid, gid)

    monkeypatch.setattr(os, "chown", _chown)
    return calls

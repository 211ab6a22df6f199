import argparse
import shutil
from pathlib import Path

import pytest

from receiptd_provision.config import build_provision_config
from receiptd_provision.paths import find_source_dir, under_root


def _args(**kwargs) -> argparse.Namespace:
    base = {
        "host_root": None,
        "source_dir": None,
        "uid_min": None,
        "uid_max": None,
        "skip_config": False,
        "overwrite_config": False,
        "dry_run": False,
    }
    base.update(kwargs)
    return argparse.Namespace(**base)


def test_defaults(source_dir: Path, tmp_path: Path):
    cfg = build_provision_config(_args(source_dir=str(source_dir)), script_dir=str(tmp_path))
    assert cfg.host_root == "/"
    assert cfg.source_dir == str(source_dir)
    assert (cfg.account.uid_min, cfg.account.uid_max) == (100, 999)
    assert cfg.account.name == "receiptd"
    assert cfg.install_config is True
    assert cfg.overwrite_config is False


def test_cli_beats_env_beats_dotenv(source_dir: Path, tmp_path: Path, monkeypatch):
    (tmp_path / ".env").write_text(
        "RECEIPTD_UID_MIN=200\nRECEIPTD_UID_MAX=300\nRECEIPTD_INSTALL_CONFIG=no\nOTHER=1\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("RECEIPTD_UID_MAX", "400")

    cfg = build_provision_config(_args(source_dir=str(source_dir), uid_min=250), script_dir=str(tmp_path))

    assert cfg.account.uid_min == 250
    assert cfg.account.uid_max == 400
    assert cfg.install_config is False


def test_dotenv_found_in_parent_directory(source_dir: Path, tmp_path: Path):
    (tmp_path / ".env").write_text(f'RECEIPTD_HOST_ROOT="{tmp_path / "stage"}"\n', encoding="utf-8")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    cfg = build_provision_config(_args(source_dir=str(source_dir)), script_dir=str(nested))
    assert cfg.host_root == str(tmp_path / "stage")


def test_invalid_uid_range_exits(source_dir: Path, tmp_path: Path):
    with pytest.raises(SystemExit) as exc:
        build_provision_config(_args(source_dir=str(source_dir), uid_min=900, uid_max=100), script_dir=str(tmp_path))
    assert exc.value.code == 2


def test_non_integer_uid_exits(source_dir: Path, tmp_path: Path, monkeypatch):
    monkeypatch.setenv("RECEIPTD_UID_MIN", "abc")
    with pytest.raises(SystemExit):
        build_provision_config(_args(source_dir=str(source_dir)), script_dir=str(tmp_path))


def test_missing_source_dir_exits(tmp_path: Path):
    with pytest.raises(SystemExit):
        build_provision_config(_args(source_dir=str(tmp_path / "nope")), script_dir=str(tmp_path))


def test_source_dir_without_fonts_exits(source_dir: Path, tmp_path: Path):
    shutil.rmtree(source_dir / "fonts")
    with pytest.raises(SystemExit) as exc:
        build_provision_config(_args(source_dir=str(source_dir)), script_dir=str(tmp_path))
    assert exc.value.code == 2


def test_skip_config_flag(source_dir: Path, tmp_path: Path):
    cfg = build_provision_config(_args(source_dir=str(source_dir), skip_config=True), script_dir=str(tmp_path))
    assert cfg.install_config is False


def test_find_source_dir_walks_upwards(tmp_path: Path):
    share = tmp_path / "share" / "receiptd"
    share.mkdir(parents=True)
    (share / "receiptd.rc.d").write_text("#!/bin/ksh\n", encoding="utf-8")
    nested = tmp_path / "src" / "pkg"
    nested.mkdir(parents=True)
    assert find_source_dir(str(nested)) == str(share)


def test_under_root():
    assert under_root("/", "/etc/rc.d/receiptd") == "/etc/rc.d/receiptd"
    assert under_root("/mnt/image", "/var/receiptd") == "/mnt/image/var/receiptd"

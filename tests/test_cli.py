import os
import shutil
from pathlib import Path

import pytest

from receiptd_provision import assets
from receiptd_provision.cli.main import main


def _target(host_root: Path, source_dir: Path):
    return ["--host-root", str(host_root), "--source-dir", str(source_dir)]


def test_plan_exits_zero_and_changes_nothing(host_root: Path, source_dir: Path, tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    code = main(["plan", *_target(host_root, source_dir)])
    assert code == 0
    assert not (host_root / "var").exists()
    out = capsys.readouterr().out
    assert "ensure-account: pending" in out
    assert "create account 'receiptd'" in out


def test_provision_then_status(host_root: Path, source_dir: Path, tmp_path, monkeypatch, chown_calls):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(assets, "_load_font", lambda path: "Noto Sans")

    assert main(["provision", *_target(host_root, source_dir)]) == 0
    assert (host_root / "etc" / "rc.d" / "receiptd").is_file()
    assert (host_root / "etc" / "receiptd.conf").is_file()

    status = main(["status", *_target(host_root, source_dir)])
    # ownership is only applied for real when running as root
    assert status == (0 if os.geteuid() == 0 else 1)


def test_provision_dry_run_is_plan(host_root: Path, source_dir: Path, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert main(["provision", "--dry-run", *_target(host_root, source_dir)]) == 0
    assert not (host_root / "etc" / "rc.d" / "receiptd").exists()


def test_provision_failure_exit_code(host_root: Path, source_dir: Path, tmp_path, monkeypatch, chown_calls):
    monkeypatch.chdir(tmp_path)
    (source_dir / "receiptd.rc.d").unlink()
    assert main(["provision", "--skip-config", *_target(host_root, source_dir)]) == 1
    assert not (host_root / "etc" / "rc.d" / "receiptd").exists()


def test_verify_assets_reports_missing(tmp_path: Path, capsys):
    code = main(["verify-assets", "--data-dir", str(tmp_path)])
    assert code == 1
    assert "font file missing" in capsys.readouterr().out


def test_verify_assets_host_root_from_dotenv(tmp_path: Path, monkeypatch, capsys):
    stage = tmp_path / "stage"
    (tmp_path / ".env").write_text(f"RECEIPTD_HOST_ROOT={stage}\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    assert main(["verify-assets"]) == 1
    out = capsys.readouterr().out
    assert str(stage / "var" / "receiptd" / "fonts") in out


def test_plan_without_fonts_is_a_usage_error(host_root: Path, source_dir: Path, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    shutil.rmtree(source_dir / "fonts")
    with pytest.raises(SystemExit) as exc:
        main(["plan", *_target(host_root, source_dir)])
    assert exc.value.code == 2
    assert not (host_root / "var").exists()

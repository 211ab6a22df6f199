from pathlib import Path

import pytest

from receiptd_provision import assets


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    d = tmp_path / "var" / "receiptd"
    (d / "fonts").mkdir(parents=True)
    for name in assets.REQUIRED_FONTS:
        (d / "fonts" / name).write_bytes(b"font")
    (d / "logo.svg").write_text('<svg xmlns="http://www.w3.org/2000/svg"><rect/></svg>', encoding="utf-8")
    return d


def test_complete_data_dir_has_no_problems(data_dir: Path, monkeypatch):
    monkeypatch.setattr(assets, "_load_font", lambda path: "Noto Sans")
    assert assets.verify_assets(str(data_dir)) == []


def test_missing_font_is_reported(data_dir: Path, monkeypatch):
    monkeypatch.setattr(assets, "_load_font", lambda path: "Noto Sans")
    (data_dir / "fonts" / "NotoSansMono-Regular.ttf").unlink()

    problems = assets.verify_assets(str(data_dir))

    assert [p.reason for p in problems] == ["font file missing"]
    assert problems[0].path.endswith("NotoSansMono-Regular.ttf")


def test_unloadable_font_is_reported(data_dir: Path, monkeypatch):
    def _load(path):
        if path.endswith("NotoSans-Bold.ttf"):
            raise RuntimeError("cannot open font")
        return "Noto Sans"

    monkeypatch.setattr(assets, "_load_font", _load)
    problems = assets.verify_assets(str(data_dir))
    assert len(problems) == 1
    assert "not a loadable font" in problems[0].reason


def test_logo_must_be_svg(data_dir: Path, monkeypatch):
    monkeypatch.setattr(assets, "_load_font", lambda path: "Noto Sans")
    (data_dir / "logo.svg").write_text("<html></html>", encoding="utf-8")
    problems = assets.verify_assets(str(data_dir))
    assert len(problems) == 1
    assert "expected <svg>" in problems[0].reason


def test_broken_logo_xml(data_dir: Path, monkeypatch):
    monkeypatch.setattr(assets, "_load_font", lambda path: "Noto Sans")
    (data_dir / "logo.svg").write_text("<svg", encoding="utf-8")
    problems = assets.verify_assets(str(data_dir))
    assert "not valid XML" in problems[0].reason


def test_empty_data_dir_reports_everything(tmp_path: Path):
    problems = assets.verify_assets(str(tmp_path))
    assert len(problems) == len(assets.REQUIRED_FONTS) + 1

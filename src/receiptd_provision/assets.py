"""Checks for the files receiptd loads from its data directory at start-up."""

from __future__ import annotations

import os
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import List

import fitz  # PyMuPDF

from .logging import get_logger

LOG = get_logger("assets")

REQUIRED_FONTS = (
    "NotoSans-Regular.ttf",
    "NotoSans-Bold.ttf",
    "NotoSansMono-Regular.ttf",
)
LOGO_FILENAME = "logo.svg"


@dataclass
class AssetProblem:
    path: str
    reason: str


def _load_font(path: str) -> str:
    """Load a font file with PyMuPDF and return its family name."""
    font = fitz.Font(fontfile=path)
    return font.name


def check_font(path: str) -> List[AssetProblem]:
    if not os.path.isfile(path):
        return [AssetProblem(path, "font file missing")]
    try:
        name = _load_font(path)
    except Exception as exc:  # fitz has no single error base class
        return [AssetProblem(path, f"not a loadable font: {exc}")]
    LOG.debug(f"Font OK: {path} ({name})")
    return []


def check_logo(path: str) -> List[AssetProblem]:
    if not os.path.isfile(path):
        return [AssetProblem(path, "logo missing")]
    try:
        root = ET.parse(path).getroot()
    except (ET.ParseError, OSError) as exc:
        return [AssetProblem(path, f"logo is not valid XML: {exc}")]
    if not root.tag.endswith("svg"):
        return [AssetProblem(path, f"logo root element is <{root.tag}>, expected <svg>")]
    return []


def verify_assets(data_dir: str) -> List[AssetProblem]:
    """Return every problem with the fonts and logo under data_dir (empty when usable)."""
    problems: List[AssetProblem] = []
    fonts_dir = os.path.join(data_dir, "fonts")
    for name in REQUIRED_FONTS:
        problems.extend(check_font(os.path.join(fonts_dir, name)))
    problems.extend(check_logo(os.path.join(data_dir, LOGO_FILENAME)))
    if problems:
        for p in problems:
            LOG.warning(f"Asset problem: {p.path}: {p.reason}")
    else:
        LOG.info(f"All receiptd assets under {data_dir} verified")
    return problems

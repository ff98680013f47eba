# services/api/core/fonts.py
"""Font selection shared by the body renderer and the header/footer overlay."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from fpdf import FPDF

logger = logging.getLogger(__name__)

UNICODE_FAMILY = "DocFont"
CORE_FAMILY = "Helvetica"


def unicode_font_available(font_path: Optional[str]) -> bool:
    return bool(font_path) and Path(font_path).is_file()


def bold_variant(font_path: str) -> str:
    """DejaVuSans.ttf -> DejaVuSans-Bold.ttf when that file exists, else font_path itself."""
    path = Path(font_path)
    bold = path.with_name(f"{path.stem}-Bold{path.suffix}")
    return str(bold) if bold.is_file() else str(path)


def setup_fonts(pdf: FPDF, font_path: Optional[str], language: str) -> str:
    """
    Register the configured TTF and return the family to use. Italic styles map
    to the upright files, so <b>/<i> in templates never hit a missing style.
    Falls back to the core Helvetica family, which only covers latin-1.
    """
    if not unicode_font_available(font_path):
        return CORE_FAMILY

    bold = bold_variant(font_path)
    for style, fname in (("", font_path), ("I", font_path), ("B", bold), ("BI", bold)):
        pdf.add_font(UNICODE_FAMILY, style=style, fname=str(fname))
    if language == "ar":
        # needs uharfbuzz; joins Arabic letters and orders RTL runs
        pdf.set_text_shaping(True)
    return UNICODE_FAMILY


def effective_language(language: str, font_path: Optional[str]) -> str:
    """Arabic output needs a unicode font; without one we print English labels."""
    if language == "ar" and not unicode_font_available(font_path):
        logger.warning("Arabic document requested but no FONT_PATH configured; using English labels")
        return "en"
    return language

# services/api/core/overlay.py
"""
Running header/footer stamped over every page of a finished document.

An fpdf2 document with one transparent page per target page draws the header
(document number, revision, date of issue, logo/company) and footer (document
code, "Page N of M"). The total page count is written as fpdf2's {nb} alias,
resolved when the overlay is output. pypdf then merges overlay page i onto
target page i.
"""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from fpdf import FPDF
from pypdf import PdfReader, PdfWriter

from core.fonts import effective_language, setup_fonts
from core.renderer import FOOTER_ZONE, HEADER_ZONE, MARGIN_X

logger = logging.getLogger(__name__)

TOTAL_PAGES_ALIAS = "{nb}"
BRAND_COLOR = (11, 79, 162)
MUTED_COLOR = (110, 110, 110)

_LABELS = {
    "en": {"revision": "REV. No", "issued": "DATE OF ISSUE", "number": "No."},
    "ar": {"revision": "رقم المراجعة", "issued": "تاريخ الإصدار", "number": "رقم"},
}


def page_label(page: int, total, language: str = "en") -> str:
    """'Page 2 of 5' / 'صفحة 2 من 5'. `total` may be the {nb} alias."""
    if language == "ar":
        return f"صفحة {page} من {total}"
    return f"Page {page} of {total}"


@dataclass(frozen=True)
class RunningHeader:
    document_number: str
    issue_date: str
    doc_code: str
    revision: str = "01"
    language: str = "en"
    company_name: str = ""
    logo_path: Optional[str] = None


class _OverlayPDF(FPDF):
    def __init__(self, header: RunningHeader, font_path: Optional[str]):
        super().__init__(orientation="P", unit="pt", format="A4")
        self.running = header
        self.language = effective_language(header.language, font_path)
        self.family = setup_fonts(self, font_path, self.language)
        self.set_auto_page_break(False)
        self.set_margins(left=MARGIN_X, top=0, right=MARGIN_X)
        self.alias_nb_pages(TOTAL_PAGES_ALIAS)

    @property
    def rtl(self) -> bool:
        return self.language == "ar"

    def _text(self, x: float, y: float, w: float, text: str, *, size: float = 9,
              style: str = "", align: str = "L", color=(0, 0, 0)) -> None:
        self.set_font(self.family, style, size)
        self.set_text_color(*color)
        self.set_xy(x, y)
        self.cell(w=w, h=size + 3, text=text, align=align)

    def header(self):
        labels = _LABELS[self.language]
        content_w = self.w - 2 * MARGIN_X
        block_w = content_w / 3

        # Revision / date block sits on the reading-start side
        meta_align = "R" if self.rtl else "L"
        meta_x = self.w - MARGIN_X - block_w if self.rtl else MARGIN_X
        self._text(meta_x, 28, block_w, f"{labels['revision']}: {self.running.revision}",
                   align=meta_align, color=MUTED_COLOR)
        self._text(meta_x, 42, block_w, f"{labels['issued']}: {self.running.issue_date}",
                   align=meta_align, color=MUTED_COLOR)

        # Document number centered
        self._text(MARGIN_X + block_w, 32, block_w,
                   f"{labels['number']} {self.running.document_number}",
                   size=12, style="B", align="C", color=BRAND_COLOR)

        # Branding on the opposite side
        brand_x = MARGIN_X if self.rtl else self.w - MARGIN_X - block_w
        logo = self.running.logo_path
        if logo and Path(logo).is_file():
            logo_w, logo_h = 90.0, 50.0
            x = MARGIN_X if self.rtl else self.w - MARGIN_X - logo_w
            self.image(logo, x=x, y=18, w=logo_w, h=logo_h, keep_aspect_ratio=True)
        elif self.running.company_name:
            self._text(brand_x, 32, block_w, self.running.company_name,
                       size=11, style="B", align="L" if self.rtl else "R", color=BRAND_COLOR)

        self.set_draw_color(*BRAND_COLOR)
        self.set_line_width(1.5)
        rule_y = HEADER_ZONE - 20
        self.line(MARGIN_X, rule_y, self.w - MARGIN_X, rule_y)

    def footer(self):
        rule_y = self.h - FOOTER_ZONE + 15
        self.set_draw_color(200, 200, 200)
        self.set_line_width(0.5)
        self.line(MARGIN_X, rule_y, self.w - MARGIN_X, rule_y)

        half = (self.w - 2 * MARGIN_X) / 2
        text_y = self.h - 38
        label = page_label(self.page_no(), TOTAL_PAGES_ALIAS, self.language)
        if self.rtl:
            self._text(MARGIN_X + half, text_y, half, label, size=8, align="R", color=MUTED_COLOR)
            self._text(MARGIN_X, text_y, half, self.running.doc_code, size=8, align="L", color=MUTED_COLOR)
        else:
            self._text(MARGIN_X, text_y, half, label, size=8, align="L", color=MUTED_COLOR)
            self._text(MARGIN_X + half, text_y, half, self.running.doc_code, size=8, align="R", color=MUTED_COLOR)


def build_overlay(
    header: RunningHeader,
    page_sizes: Sequence[Tuple[float, float]],
    font_path: Optional[str] = None,
) -> bytes:
    """One overlay page per (width, height) in points."""
    pdf = _OverlayPDF(header, font_path)
    for width, height in page_sizes:
        pdf.add_page(format=(width, height))
    return bytes(pdf.output())


def stamp_pages(
    pdf_bytes: bytes,
    header: RunningHeader,
    font_path: Optional[str] = None,
) -> Tuple[bytes, int]:
    """
    Merge the running header/footer onto every page of `pdf_bytes`.
    Call exactly once per final document: stamping is not idempotent.
    Returns (stamped bytes, page count).
    """
    reader = PdfReader(io.BytesIO(pdf_bytes))
    sizes: List[Tuple[float, float]] = [
        (float(p.mediabox.width), float(p.mediabox.height)) for p in reader.pages
    ]
    overlay = PdfReader(io.BytesIO(build_overlay(header, sizes, font_path)))

    writer = PdfWriter()
    for page, overlay_page in zip(reader.pages, overlay.pages):
        page.merge_page(overlay_page)
        writer.add_page(page)

    out = io.BytesIO()
    writer.write(out)
    logger.info(f"Stamped header/footer on {len(sizes)} page(s) of {header.document_number}")
    return out.getvalue(), len(sizes)

"""
Shared fixtures: isolated settings per test and small PDFs built with fpdf2.
"""
import io
import os
import sys

import pytest
from fpdf import FPDF
from pypdf import PdfReader

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from settings import Settings  # noqa: E402


def build_pdf(pages=1, *, sizes=None, colors=None, label="Attachment page"):
    """PDF with `pages` pages; optional per-page (w, h) in points and fill colors."""
    pdf = FPDF(orientation="P", unit="pt", format="A4")
    pdf.set_auto_page_break(False)
    for i in range(pages):
        if sizes:
            pdf.add_page(format=sizes[i])
        else:
            pdf.add_page()
        if colors:
            pdf.set_fill_color(*colors[i])
            pdf.rect(0, 0, pdf.w, pdf.h, style="F")
        pdf.set_font("Helvetica", size=14)
        pdf.set_xy(40, 60)
        pdf.cell(text=f"{label} {i + 1}")
    return bytes(pdf.output())


def pdf_text(pdf_bytes, page=None):
    reader = PdfReader(io.BytesIO(pdf_bytes))
    pages = reader.pages if page is None else [reader.pages[page]]
    return "\n".join(p.extract_text() or "" for p in pages)


def pdf_page_count(pdf_bytes):
    return len(PdfReader(io.BytesIO(pdf_bytes)).pages)


@pytest.fixture
def make_pdf():
    return build_pdf


@pytest.fixture
def static_appendix(tmp_path):
    path = tmp_path / "assets" / "terms.pdf"
    path.parent.mkdir(parents=True)
    path.write_bytes(build_pdf(1, label="Terms and conditions"))
    return path


@pytest.fixture
def settings(tmp_path, static_appendix):
    data_dir = tmp_path / "data"
    return Settings(
        _env_file=None,
        data_dir=str(data_dir),
        artifacts_dir=str(data_dir / "artifacts"),
        attachments_dir=str(data_dir / "attachments"),
        static_appendix_path=str(static_appendix),
        company_name="Back Office Test",
        render_timeout_s=30,
        settle_timeout_s=5,
        max_parallel_renders=2,
    )

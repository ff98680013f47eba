# services/api/core/compose.py
"""
Merge/compose engine.

Final page order: rendered base pages, then the attachment (one A4 page per
raster image, or vector pages fit to A4), then the static appendix. The
running header/footer is stamped once, over the final page set, so the page
count in the footer always matches the merged document.
"""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from fpdf import FPDF
from fpdf.errors import FPDFException
from pypdf import PageObject, PdfReader, PdfWriter, Transformation
from pypdf.errors import PyPdfError
from pypdf.generic import RectangleObject

from core.errors import RenderFailed
from core.overlay import RunningHeader, stamp_pages
from core.rasterizer import RasterPage
from core.renderer import A4_HEIGHT, A4_WIDTH, FOOTER_ZONE, HEADER_ZONE, MARGIN_X
from core.results import Degraded, Fail, Ok

logger = logging.getLogger(__name__)

# Exceptions that mean "one of the secondary sources is unusable".
MERGE_ERRORS = (PyPdfError, FPDFException, OSError, ValueError, KeyError, TypeError)


@dataclass(frozen=True)
class PageCount:
    generated: int
    attachment: int = 0
    static: int = 0

    @property
    def total(self) -> int:
        return self.generated + self.attachment + self.static

    def to_dict(self) -> dict:
        return {
            "generated": self.generated,
            "attachment": self.attachment,
            "static": self.static,
            "total": self.total,
        }


@dataclass(frozen=True)
class ComposedDocument:
    pdf_bytes: bytes
    pages: PageCount
    merged: bool

    @property
    def page_count(self) -> int:
        return self.pages.total


ComposeOutcome = Union[Ok, Degraded]


def images_to_pdf(images: Sequence[RasterPage]) -> bytes:
    """One A4 page per image, scaled to fit the content box and centered."""
    pdf = FPDF(orientation="P", unit="pt", format="A4")
    pdf.set_auto_page_break(False)
    box_w = A4_WIDTH - 2 * MARGIN_X
    box_h = A4_HEIGHT - HEADER_ZONE - FOOTER_ZONE
    for image in images:
        pdf.add_page()
        scale = min(box_w / image.width, box_h / image.height)
        w, h = image.width * scale, image.height * scale
        x = (A4_WIDTH - w) / 2
        y = HEADER_ZONE + (box_h - h) / 2
        pdf.image(io.BytesIO(image.data), x=x, y=y, w=w, h=h)
    return bytes(pdf.output())


def fit_page_to_a4(page: PageObject) -> PageObject:
    """Scale a page down (never up) to fit A4 portrait and center it."""
    box = page.mediabox
    width, height = float(box.width), float(box.height)
    if abs(width - A4_WIDTH) < 1 and abs(height - A4_HEIGHT) < 1 and float(box.left) == 0 and float(box.bottom) == 0:
        return page

    scale = min(A4_WIDTH / width, A4_HEIGHT / height, 1.0)
    tx = (A4_WIDTH - width * scale) / 2 - float(box.left) * scale
    ty = (A4_HEIGHT - height * scale) / 2 - float(box.bottom) * scale
    page.add_transformation(Transformation().scale(scale, scale).translate(tx, ty))
    a4 = RectangleObject([0, 0, A4_WIDTH, A4_HEIGHT])
    page.mediabox = a4
    page.cropbox = a4
    return page


class ComposeEngine:
    def __init__(self, *, font_path: Optional[str] = None):
        self.font_path = font_path

    def compose(
        self,
        base_pdf: bytes,
        header: RunningHeader,
        *,
        attachment_images: Sequence[RasterPage] = (),
        attachment_pdf: Optional[bytes] = None,
        static_pdf: Optional[bytes] = None,
        static_images: Sequence[RasterPage] = (),
    ) -> ComposeOutcome:
        """
        Returns Ok(ComposedDocument) or, when a secondary source cannot be
        merged, Degraded(ComposedDocument of the base alone, reason).
        Raises RenderFailed only when the base document itself is unusable.
        """
        has_secondary = bool(attachment_images) or attachment_pdf is not None \
            or static_pdf is not None or bool(static_images)

        if has_secondary:
            merged = self._merge(
                base_pdf,
                attachment_images=attachment_images,
                attachment_pdf=attachment_pdf,
                static_pdf=static_pdf,
                static_images=static_images,
            )
            if isinstance(merged, Ok):
                pdf_bytes, pages = merged.value
                stamped, total = self._stamp(pdf_bytes, header)
                logger.info(f"✓ Composed {header.document_number}: {pages.to_dict()}")
                return Ok(ComposedDocument(pdf_bytes=stamped, pages=pages, merged=True))
            logger.warning(f"Merge failed for {header.document_number}, using base document: {merged.reason}")
            reason = merged.reason
        else:
            reason = None

        stamped, total = self._stamp(base_pdf, header)
        document = ComposedDocument(pdf_bytes=stamped, pages=PageCount(generated=total), merged=False)
        if reason is None:
            return Ok(document)
        return Degraded(document, reason)

    def _stamp(self, pdf_bytes: bytes, header: RunningHeader):
        try:
            return stamp_pages(pdf_bytes, header, self.font_path)
        except MERGE_ERRORS as e:
            raise RenderFailed(f"Cannot apply header/footer: {e}") from e

    def _merge(
        self,
        base_pdf: bytes,
        *,
        attachment_images: Sequence[RasterPage],
        attachment_pdf: Optional[bytes],
        static_pdf: Optional[bytes],
        static_images: Sequence[RasterPage],
    ):
        """Ok((bytes, PageCount)) or Fail(reason). All-or-nothing."""
        try:
            writer = PdfWriter()
            generated = self._append(writer, base_pdf)

            attachment = 0
            if attachment_images:
                attachment += self._append(writer, images_to_pdf(attachment_images))
            if attachment_pdf is not None:
                attachment += self._append(writer, attachment_pdf, fit=True, source="attachment")

            static = 0
            if static_images:
                static += self._append(writer, images_to_pdf(static_images))
            if static_pdf is not None:
                static += self._append(writer, static_pdf, fit=True, source="static appendix")

            out = io.BytesIO()
            writer.write(out)
        except MERGE_ERRORS as e:
            return Fail(f"PDF merge failed: {type(e).__name__}: {e}", e)

        return Ok((out.getvalue(), PageCount(generated=generated, attachment=attachment, static=static)))

    @staticmethod
    def _append(writer: PdfWriter, pdf_bytes: bytes, *, fit: bool = False, source: str = "document") -> int:
        reader = PdfReader(io.BytesIO(pdf_bytes))
        if len(reader.pages) == 0:
            raise ValueError(f"{source} has no pages")
        for page in reader.pages:
            writer.add_page(fit_page_to_a4(page) if fit else page)
        return len(reader.pages)

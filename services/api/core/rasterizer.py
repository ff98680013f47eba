# services/api/core/rasterizer.py
"""
Attachment rasterizer: arbitrary PDF bytes -> ordered, bounded JPEG pages.

Pages whose internal structure we cannot trust (scans, foreign generators,
odd page boxes) are embedded as images instead of vector pages.
"""
from __future__ import annotations

import io
import logging
import os
import re
import tempfile
import threading
import uuid
from dataclasses import dataclass
from typing import List

import pypdfium2 as pdfium
from PIL import Image

from core.engine import CancelToken, run_bounded
from core.errors import InvalidAttachment

logger = logging.getLogger(__name__)

# pdfium is not thread-safe: one conversion at a time per process.
_PDFIUM_LOCK = threading.Lock()

_PAGE_INDEX_RE = re.compile(r"-(\d+)\.png$")


@dataclass(frozen=True)
class RasterPage:
    index: int          # 0-based position in the source document
    width: int          # pixels
    height: int
    data: bytes         # encoded image
    format: str = "JPEG"


def collect_page_files(workdir: str) -> List[str]:
    """
    Page images in `workdir`, ordered by the page index embedded in the
    file name (page-<token>-<n>.png). Directory listing order is arbitrary,
    and a plain string sort would put page 10 before page 2.
    """
    indexed = []
    for name in os.listdir(workdir):
        m = _PAGE_INDEX_RE.search(name)
        if m:
            indexed.append((int(m.group(1)), name))
    indexed.sort()
    return [os.path.join(workdir, name) for _, name in indexed]


def fit_image(image: Image.Image, max_width: int, max_height: int) -> Image.Image:
    """Scale down (never up) to fit inside max_width x max_height, keeping aspect ratio."""
    fitted = image.convert("RGB")
    fitted.thumbnail((max_width, max_height), Image.LANCZOS)
    return fitted


class AttachmentRasterizer:
    def __init__(
        self,
        *,
        max_width: int = 850,
        max_height: int = 1100,
        quality: int = 94,
        scale: float = 2.0,
        timeout_s: float = 60.0,
        settle_timeout_s: float = 15.0,
    ):
        self.max_width = max_width
        self.max_height = max_height
        self.quality = quality
        self.scale = scale
        self.timeout_s = timeout_s
        self.settle_timeout_s = settle_timeout_s

    async def rasterize(self, document_bytes: bytes) -> List[RasterPage]:
        """
        Convert every page of `document_bytes` to a bounded JPEG, in page order.

        Raises InvalidAttachment for anything that is not a readable PDF (or a
        page that fails to convert: partial results are never returned) and
        RenderTimeout when conversion exceeds the time bound.
        """
        if not document_bytes:
            raise InvalidAttachment("Attachment is empty")
        return await run_bounded(
            self.rasterize_sync,
            document_bytes,
            timeout=self.timeout_s,
            settle_timeout=self.settle_timeout_s,
            what="rasterize attachment",
        )

    def rasterize_sync(self, document_bytes: bytes, cancel: CancelToken) -> List[RasterPage]:
        with _PDFIUM_LOCK:
            try:
                doc = pdfium.PdfDocument(document_bytes)
            except pdfium.PdfiumError as e:
                raise InvalidAttachment(f"Attachment is not a valid PDF: {e}") from e

            try:
                page_count = len(doc)
                if page_count == 0:
                    raise InvalidAttachment("Attachment has no pages")

                # Intermediate files live only inside this block.
                with tempfile.TemporaryDirectory(prefix="raster-") as workdir:
                    token = uuid.uuid4().hex[:8]
                    self._convert_pages(doc, workdir, token, cancel)

                    files = collect_page_files(workdir)
                    if len(files) != page_count:
                        raise InvalidAttachment(
                            f"Converted {len(files)} of {page_count} pages"
                        )

                    pages = []
                    for index, path in enumerate(files):
                        cancel.raise_if_cancelled()
                        pages.append(self._encode(path, index))
            finally:
                doc.close()

        logger.info(f"Rasterized attachment: {len(pages)} page(s)")
        return pages

    def _convert_pages(self, doc, workdir: str, token: str, cancel: CancelToken) -> None:
        """Engine stage: one PNG per page, named page-<token>-<n>.png (n is 1-based)."""
        for i in range(len(doc)):
            cancel.raise_if_cancelled()
            page = doc[i]
            try:
                bitmap = page.render(scale=self.scale)
                image = bitmap.to_pil()
            except pdfium.PdfiumError as e:
                raise InvalidAttachment(f"Page {i + 1} could not be rendered: {e}") from e
            finally:
                page.close()
            image.save(os.path.join(workdir, f"page-{token}-{i + 1}.png"), format="PNG")

    def _encode(self, path: str, index: int) -> RasterPage:
        with Image.open(path) as source:
            fitted = fit_image(source, self.max_width, self.max_height)
        buf = io.BytesIO()
        fitted.save(buf, format="JPEG", quality=self.quality)
        return RasterPage(index=index, width=fitted.width, height=fitted.height, data=buf.getvalue())

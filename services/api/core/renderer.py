# services/api/core/renderer.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

from fpdf import FPDF
from fpdf.errors import FPDFException, FPDFUnicodeEncodingException

from core.engine import CancelToken, run_bounded
from core.errors import RenderFailed
from core.fonts import effective_language, setup_fonts
from core.templates import TemplateStore

logger = logging.getLogger(__name__)

# ---------- Page geometry (points) -------------------------------------------
# Shared with the overlay and compose stages so the body never runs under the
# running header/footer.

A4_WIDTH = 595.28
A4_HEIGHT = 841.89
MARGIN_X = 40.0
HEADER_ZONE = 105.0   # top band reserved for the running header
FOOTER_ZONE = 60.0    # bottom band reserved for the running footer


@dataclass
class RenderedDocument:
    pdf_bytes: bytes
    page_count: int
    template_name: str
    template_version: int
    language: str


class DocumentRenderer:
    """
    Binds a record into a named template and lays it out on A4 pages.

    The HTML is produced by jinja2 (core.templates) and paginated by fpdf2's
    HTML renderer in a worker thread. Header/footer are NOT drawn here: they
    are stamped once over the final page set by the compose engine.
    """

    def __init__(
        self,
        templates: TemplateStore,
        *,
        font_path: Optional[str] = None,
        timeout_s: float = 60.0,
        settle_timeout_s: float = 15.0,
    ):
        self.templates = templates
        self.font_path = font_path
        self.timeout_s = timeout_s
        self.settle_timeout_s = settle_timeout_s

    async def render(
        self,
        template_name: str,
        binding: Mapping[str, Any],
        *,
        language: str = "en",
        version: Optional[int] = None,
    ) -> RenderedDocument:
        # Template problems are configuration errors: fail before starting the engine.
        template = self.templates.load(template_name, version)
        language = effective_language(language, self.font_path)
        html = template.bind({**binding, "language": language, "rtl": language == "ar"})

        pdf_bytes, pages = await run_bounded(
            self._render_html,
            html,
            language,
            timeout=self.timeout_s,
            settle_timeout=self.settle_timeout_s,
            what=f"render {template_name} v{template.version}",
        )
        logger.info(f"Rendered {template_name} v{template.version}: {pages} page(s)")
        return RenderedDocument(
            pdf_bytes=pdf_bytes,
            page_count=pages,
            template_name=template_name,
            template_version=template.version,
            language=language,
        )

    def _render_html(self, html: str, language: str, cancel: CancelToken) -> Tuple[bytes, int]:
        pdf = FPDF(orientation="P", unit="pt", format="A4")
        pdf.set_margins(left=MARGIN_X, top=HEADER_ZONE, right=MARGIN_X)
        pdf.set_auto_page_break(auto=True, margin=FOOTER_ZONE)
        family = setup_fonts(pdf, self.font_path, language)
        pdf.set_font(family, size=10)
        pdf.add_page()

        cancel.raise_if_cancelled()
        try:
            pdf.write_html(html, font_family=family)
        except FPDFUnicodeEncodingException as e:
            raise RenderFailed(f"Text cannot be encoded with the configured font: {e}") from e
        except FPDFException as e:
            raise RenderFailed(f"Layout failed: {e}") from e
        cancel.raise_if_cancelled()

        return bytes(pdf.output()), pdf.page_no()

"""
Tests for template rendering to PDF.

Run with: pytest tests/test_renderer.py -v
"""
import time

import pytest

from core.errors import RenderTimeout, TemplateNotFound
from core.fonts import bold_variant, effective_language, unicode_font_available
from core.renderer import DocumentRenderer
from core.templates import PLACEHOLDER, TemplateStore
from settings import Settings
from conftest import pdf_page_count, pdf_text


@pytest.fixture
def renderer():
    return DocumentRenderer(TemplateStore(Settings(_env_file=None).templates_dir), timeout_s=30)


class TestRender:
    @pytest.mark.asyncio
    async def test_purchase_order_renders(self, renderer):
        """Purchase order renders labels, values and the number."""
        binding = {
            "document_number": "PO0007",
            "supplier": "Acme Steel",
            "date": "2026-10-19",
            "items": [{"description": "Steel bolt M8", "unit": "pcs", "quantity": 100, "unit_price": 0.25, "total": 25.0}],
            "title_en": "PURCHASE ORDER",
        }
        rendered = await renderer.render("purchase-order", binding)

        assert rendered.page_count == 1
        assert rendered.template_version == 1
        assert pdf_page_count(rendered.pdf_bytes) == 1
        text = pdf_text(rendered.pdf_bytes)
        assert "Acme Steel" in text
        assert PLACEHOLDER in text

    @pytest.mark.asyncio
    async def test_long_document_paginates(self, renderer):
        """Long item lists flow onto extra pages."""
        items = [
            {"description": f"Line item {n}", "unit": "pcs", "quantity": n, "unit_price": 1, "total": n}
            for n in range(1, 121)
        ]
        rendered = await renderer.render("material-request", {"requester": "Stores", "items": items})

        assert rendered.page_count > 1
        assert pdf_page_count(rendered.pdf_bytes) == rendered.page_count

    @pytest.mark.asyncio
    async def test_unknown_template(self, renderer):
        """An unknown template should raise TemplateNotFound."""
        with pytest.raises(TemplateNotFound):
            await renderer.render("nope", {})

    @pytest.mark.asyncio
    async def test_timeout(self, renderer, monkeypatch):
        """A render exceeding the timeout should raise RenderTimeout."""
        def hang(self, html, language, cancel):
            while True:
                cancel.raise_if_cancelled()
                time.sleep(0.01)

        monkeypatch.setattr(DocumentRenderer, "_render_html", hang)
        renderer.timeout_s = 0.2

        with pytest.raises(RenderTimeout):
            await renderer.render("receipt", {})


class TestFonts:
    def test_bold_sibling_is_used_when_present(self, tmp_path):
        """Regular.ttf pairs with Regular-Bold.ttf; otherwise the regular file serves bold."""
        regular = tmp_path / "Doc.ttf"
        regular.write_bytes(b"")
        assert bold_variant(str(regular)) == str(regular)

        (tmp_path / "Doc-Bold.ttf").write_bytes(b"")
        assert bold_variant(str(regular)) == str(tmp_path / "Doc-Bold.ttf")

    def test_bundled_font_covers_arabic(self):
        """The default font ships with the service."""
        settings = Settings(_env_file=None)
        assert unicode_font_available(settings.font_path)
        assert effective_language("ar", settings.font_path) == "ar"
        assert effective_language("ar", "") == "en"

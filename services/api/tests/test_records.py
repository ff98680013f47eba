"""
End-to-end tests: record services with the real store, renderer and merge engine.

Run with: pytest tests/test_records.py -v
"""
import asyncio
import dataclasses
from pathlib import Path

import pytest

from conftest import pdf_page_count, pdf_text
from core.errors import RecordNotFound, RenderFailed, StorageUnavailable, TemplateNotFound
from core.records import RecordService
from main import build_services
from models import PURCHASE_ORDER

ITEMS = [
    {"description": "Steel bolt M8", "unit": "pcs", "quantity": 100, "unit_price": 0.25},
    {"description": "Washer", "unit": "pcs", "quantity": 100, "unit_price": 0.05},
]


@pytest.fixture
def services(settings):
    return build_services(settings)


@pytest.fixture
def purchases(services):
    service = services["purchase-order"]
    with service.store.counters() as counters:
        counters["PO"] = 6
    return service


def _artifact_files(settings):
    folder = Path(settings.artifacts_dir)
    return sorted(p.name for p in folder.iterdir()) if folder.exists() else []


class TestCreate:
    @pytest.mark.asyncio
    async def test_numbering_and_single_page_footer(self, purchases, settings):
        """First record is PO0001 with a one-page footer and doc code."""
        record, result = await purchases.create({"supplier": "Acme Steel", "items": ITEMS, "tax_rate": 15})

        assert record["document_number"] == "PO0007"
        assert result.status == "ok"
        assert result.page_count == 1
        assert result.merged is False
        assert result.merge_error is None
        assert record["subtotal"] == 30.0
        assert record["tax_amount"] == 4.5
        assert record["total"] == 34.5

        pdf_bytes = Path(result.artifact_path).read_bytes()
        assert pdf_page_count(pdf_bytes) == 1
        text = pdf_text(pdf_bytes)
        assert "Page 1 of 1" in text
        assert "PO0007" in text
        assert result.filename.startswith("PO0007_Acme_Steel_")

        stored = purchases.get(record["id"])
        assert stored["artifact"]["page_count"] == 1
        assert purchases.store.get_counter("PO") == 7

    @pytest.mark.asyncio
    async def test_regenerate_with_attachment_and_static_appendix(self, purchases, make_pdf):
        """Regenerate appends the attachment and appendix after the base."""
        record, _ = await purchases.create({"supplier": "Acme Steel"})

        updated, result = await purchases.regenerate(
            record["id"], attachment_bytes=make_pdf(2), include_static_appendix=True
        )

        assert updated["document_number"] == "PO0007"
        assert result.status == "ok"
        assert result.merged is True
        assert result.page_count == 4
        assert result.pages == {"generated": 1, "attachment": 2, "static": 1, "total": 4}
        assert updated["attachment"]

        pdf_bytes = Path(result.artifact_path).read_bytes()
        assert pdf_page_count(pdf_bytes) == 4
        assert "Page 4 of 4" in pdf_text(pdf_bytes, page=3)
        assert "Terms and conditions" in pdf_text(pdf_bytes, page=3)

    @pytest.mark.asyncio
    async def test_stored_attachment_is_reused(self, purchases, make_pdf):
        """An attachment from an earlier merge is used again on regenerate."""
        record, _ = await purchases.create({"supplier": "Acme Steel"})
        await purchases.regenerate(record["id"], attachment_bytes=make_pdf(2))

        _, result = await purchases.update(record["id"], {"notes": "Deliver before noon"})

        assert result.pages["attachment"] == 2
        assert result.page_count == 3

    @pytest.mark.asyncio
    async def test_concurrent_creates_get_distinct_numbers(self, purchases):
        """Concurrent creates get distinct consecutive numbers."""
        (first, _), (second, _) = await asyncio.gather(
            purchases.create({"supplier": "Acme Steel"}),
            purchases.create({"supplier": "Gulf Trading"}),
        )

        assert {first["document_number"], second["document_number"]} == {"PO0007", "PO0008"}
        assert len(purchases.store.load_collection("purchases")) == 2
        assert purchases.store.get_counter("PO") == 8

    @pytest.mark.asyncio
    async def test_sequences_are_per_document_type(self, services):
        """Document types number independently."""
        po, _ = await services["purchase-order"].create({"supplier": "Acme"})
        rn, _ = await services["receipt"].create({"to": "Acme"})
        imr, _ = await services["material-request"].create({"requester": "Stores"})

        assert (po["document_number"], rn["document_number"], imr["document_number"]) == (
            "PO0001", "RN0001", "IMR0001",
        )

    @pytest.mark.asyncio
    async def test_system_fields_are_ignored(self, purchases):
        """Client-supplied id and number are ignored."""
        record, _ = await purchases.create({"supplier": "Acme", "id": "mine", "document_number": "PO9999"})
        assert record["id"] != "mine"
        assert record["document_number"] == "PO0007"


class TestDegradedAndFailed:
    @pytest.mark.asyncio
    async def test_invalid_attachment_degrades_but_saves(self, purchases):
        """A bad attachment degrades the artifact but the record is saved."""
        record, _ = await purchases.create({"supplier": "Acme Steel"})

        updated, result = await purchases.regenerate(record["id"], attachment_bytes=b"%PDF-1.4 broken")

        assert result.status == "degraded"
        assert result.merged is False
        assert result.merge_error
        assert result.page_count == 1
        assert updated["attachment"] is None
        assert purchases.get(record["id"])["artifact"]["merge_error"] == result.merge_error
        assert "Page 1 of 1" in pdf_text(Path(result.artifact_path).read_bytes())

    @pytest.mark.asyncio
    async def test_missing_static_appendix_degrades(self, settings, static_appendix):
        """A missing appendix file degrades instead of failing."""
        static_appendix.unlink()
        service = build_services(settings)["price-quote"]

        record, result = await service.create({"client_name": "Acme", "include_static_appendix": True})

        assert record["document_number"] == "PQ0001"
        assert result.status == "degraded"
        assert "not found" in result.merge_error

    @pytest.mark.asyncio
    async def test_missing_template_consumes_no_number(self, purchases, settings):
        """A render failure saves nothing and keeps the number free."""
        broken = RecordService(
            dataclasses.replace(PURCHASE_ORDER, template="no-such-template"),
            purchases.store,
            purchases.allocator,
            purchases.pipeline,
            attachments_dir=settings.attachments_dir,
        )

        with pytest.raises(TemplateNotFound):
            await broken.create({"supplier": "Acme"})

        assert purchases.store.get_counter("PO") == 6
        assert purchases.store.load_collection("purchases") == []
        assert _artifact_files(settings) == []

    @pytest.mark.asyncio
    async def test_storage_failure_removes_artifact(self, purchases, settings, monkeypatch):
        """When saving fails the new artifact is deleted."""
        def unavailable(*args, **kwargs):
            raise StorageUnavailable("disk full")

        monkeypatch.setattr(purchases.store, "insert_sequenced", unavailable)

        with pytest.raises(StorageUnavailable):
            await purchases.create({"supplier": "Acme"})

        assert _artifact_files(settings) == []
        assert purchases.store.get_counter("PO") == 6
        monkeypatch.undo()

        record, _ = await purchases.create({"supplier": "Acme"})
        assert record["document_number"] == "PO0007"


class TestUpdateDelete:
    @pytest.mark.asyncio
    async def test_update_keeps_identity_and_replaces_artifact(self, purchases, settings):
        """Update keeps id and number and replaces the artifact with a new file."""
        record, first = await purchases.create({"supplier": "Acme Steel"})

        updated, second = await purchases.update(
            record["id"], {"supplier": "Gulf Trading", "id": "other", "document_number": "PO0001"}
        )

        assert updated["id"] == record["id"]
        assert updated["document_number"] == "PO0007"
        assert updated["supplier"] == "Gulf Trading"
        assert updated["created_at"] == record["created_at"]
        assert _artifact_files(settings) == [second.filename]
        assert first.filename != second.filename

    @pytest.mark.asyncio
    async def test_update_unknown_record(self, purchases):
        """Updating an unknown id should raise RecordNotFound."""
        with pytest.raises(RecordNotFound):
            await purchases.update("missing", {"supplier": "x"})

    @pytest.mark.asyncio
    async def test_delete_removes_files(self, purchases, settings, make_pdf):
        """Delete removes the record, its artifact and its attachment."""
        record, _ = await purchases.create({"supplier": "Acme"})
        await purchases.regenerate(record["id"], attachment_bytes=make_pdf(1))

        outcome = purchases.delete(record["id"])

        assert outcome["deleted"] is True
        assert len(outcome["removed_files"]) == 2
        assert _artifact_files(settings) == []
        with pytest.raises(RecordNotFound):
            purchases.get(record["id"])

    @pytest.mark.asyncio
    async def test_list_search_and_pagination(self, purchases):
        """Search filters records and pages are sliced by limit."""
        for supplier in ("Acme Steel", "Gulf Trading", "Acme Tools"):
            await purchases.create({"supplier": supplier, "created_by": "ops@example.com"})

        found = purchases.list(search="acme")
        assert found["pagination"]["total"] == 2
        assert [r["document_number"] for r in found["records"]] == ["PO0009", "PO0007"]

        page = purchases.list(page=2, limit=2)
        assert page["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}
        assert len(page["records"]) == 1

        assert purchases.list(created_by="someone@else")["pagination"]["total"] == 0

    @pytest.mark.asyncio
    async def test_reset_sequence(self, purchases, settings):
        """Reset restarts numbering at the given value."""
        await purchases.create({"supplier": "Acme"})

        outcome = purchases.reset_sequence(0)

        assert outcome["deleted_records"] == 1
        assert outcome["next_number"] == "PO0001"
        assert _artifact_files(settings) == []


class TestArabic:
    """Arabic documents render with the bundled font and an Arabic footer."""

    @pytest.mark.asyncio
    async def test_detected_arabic_purchase_order(self, purchases):
        """Arabic content is detected and the footer reads "صفحة N من M"."""
        record, result = await purchases.create({"supplier": "شركة الحديد", "notes": "توريد عاجل"})

        assert record["language"] == "ar"
        assert record["document_number"] == "PO0007"
        assert result.status == "ok"
        assert result.language == "ar"
        assert result.page_count == 1

        text = pdf_text(Path(result.artifact_path).read_bytes())
        assert "صفحة" in text
        assert "من" in text
        assert "BO-PUR-05" in text
        assert "Page 1 of" not in text

    @pytest.mark.asyncio
    async def test_arabic_merge_with_attachment_and_appendix(self, purchases, make_pdf):
        """Arabic base pages merge like English ones."""
        record, _ = await purchases.create({"supplier": "شركة الحديد", "language": "ar"})

        _, result = await purchases.regenerate(
            record["id"], attachment_bytes=make_pdf(2), include_static_appendix=True
        )

        assert result.status == "ok"
        assert result.page_count == 4
        assert "صفحة" in pdf_text(Path(result.artifact_path).read_bytes(), page=3)

    @pytest.mark.asyncio
    async def test_without_font_labels_fall_back_to_english(self, settings):
        """With no TTF configured an Arabic request still renders, in English."""
        service = build_services(settings.model_copy(update={"font_path": ""}))["purchase-order"]

        record, result = await service.create({"supplier": "Acme Steel", "language": "ar"})

        assert record["language"] == "ar"
        assert result.language == "en"
        assert "Page 1 of 1" in pdf_text(Path(result.artifact_path).read_bytes())

    @pytest.mark.asyncio
    async def test_without_font_arabic_values_fail_cleanly(self, settings):
        """Arabic field values need the TTF; without it nothing is saved."""
        service = build_services(settings.model_copy(update={"font_path": ""}))["purchase-order"]

        with pytest.raises(RenderFailed):
            await service.create({"supplier": "شركة الحديد"})

        assert service.store.get_counter("PO") == 0
        assert service.store.load_collection("purchases") == []


class TestArtifactLifecycle:
    """A record's current artifact is never overwritten in place."""

    @pytest.mark.asyncio
    async def test_create_with_attachment(self, purchases, settings, make_pdf):
        """An attachment given at create time is merged and kept for reuse."""
        record, result = await purchases.create({"supplier": "Acme Steel"}, attachment_bytes=make_pdf(2))

        assert result.merged is True
        assert result.page_count == 3
        assert record["attachment"]
        assert (Path(settings.attachments_dir) / record["attachment"]).is_file()

    @pytest.mark.asyncio
    async def test_regenerate_writes_a_new_file(self, purchases, settings):
        """Same label and date still yield a distinct filename; the old one goes after the save."""
        record, first = await purchases.create({"supplier": "Acme Steel"})

        updated, second = await purchases.regenerate(record["id"])

        assert second.filename != first.filename
        assert second.filename.startswith(first.filename[:-len(".pdf")])
        assert updated["artifact"]["filename"] == second.filename
        assert _artifact_files(settings) == [second.filename]

        _, third = await purchases.regenerate(record["id"])
        assert third.filename != second.filename
        assert _artifact_files(settings) == [third.filename]

    @pytest.mark.asyncio
    async def test_failed_save_keeps_current_artifact(self, purchases, settings, monkeypatch):
        """If the record cannot be saved, the stored record and its PDF are untouched."""
        record, first = await purchases.create({"supplier": "Acme Steel"})
        original = Path(first.artifact_path).read_bytes()

        def unavailable(name):
            raise StorageUnavailable("disk full")

        monkeypatch.setattr(purchases.store, "collection", unavailable)
        with pytest.raises(StorageUnavailable):
            await purchases.update(record["id"], {"notes": "changed"})
        monkeypatch.undo()

        assert _artifact_files(settings) == [first.filename]
        assert Path(first.artifact_path).read_bytes() == original
        stored = purchases.get(record["id"])
        assert stored["artifact"]["filename"] == first.filename
        assert "notes" not in stored or stored["notes"] != "changed"

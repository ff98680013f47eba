# services/api/core/records.py
"""
Generic record service: one instance per document type.

create = reserve number -> render/compose artifact -> insert record + advance
counter in one commit. Counter/store failures abort the whole operation (and
the freshly written artifact is removed); attachment/appendix problems only
degrade the artifact.
"""
from __future__ import annotations

import logging
import math
import uuid
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from adapters.base import DocumentStore
from core.counter import CounterAllocator
from core.errors import RecordNotFound
from core.fsutil import atomic_write_bytes, remove_quietly
from core.locks import NamedAsyncLocks
from core.naming import detect_language
from core.pipeline import ArtifactOptions, ArtifactPipeline, ArtifactResult
from models import DocumentType, strip_system_fields
from models.record import matches_search

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class RecordService:
    def __init__(
        self,
        doc_type: DocumentType,
        store: DocumentStore,
        allocator: CounterAllocator,
        pipeline: ArtifactPipeline,
        *,
        attachments_dir: str,
        company_name: str = "",
    ):
        self.doc_type = doc_type
        self.store = store
        self.allocator = allocator
        self.pipeline = pipeline
        self.attachments_dir = Path(attachments_dir)
        self.company_name = company_name
        self._record_locks = NamedAsyncLocks()

    @property
    def collection(self) -> str:
        return self.doc_type.collection

    # ---------- reads ----------

    def list(
        self,
        *,
        search: Optional[str] = None,
        created_by: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        records = [
            r for r in self.store.load_collection(self.collection)
            if matches_search(r, search, self.doc_type.label_field)
            and (not created_by or r.get("created_by") == created_by)
        ]
        records.sort(key=lambda r: (r.get("created_at") or "", r.get("sequence_value") or 0), reverse=True)

        page = max(1, page)
        limit = max(1, min(limit, 100))
        start = (page - 1) * limit
        total = len(records)
        return {
            "records": records[start:start + limit],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if total else 0,
            },
        }

    def get(self, record_id: str) -> Dict[str, Any]:
        for record in self.store.load_collection(self.collection):
            if record.get("id") == record_id:
                return record
        raise RecordNotFound(f"{self.doc_type.key} {record_id} not found")

    def get_by_number(self, document_number: str) -> Dict[str, Any]:
        for record in self.store.load_collection(self.collection):
            if record.get("document_number") == document_number:
                return record
        raise RecordNotFound(f"{self.doc_type.key} {document_number} not found")

    def peek_number(self) -> str:
        return self.allocator.peek(self.doc_type.sequence, self.collection)

    def artifact_path(self, record: Dict[str, Any]) -> Optional[Path]:
        artifact = record.get("artifact") or {}
        if not artifact.get("filename"):
            return None
        path = self.pipeline.artifact_path(artifact["filename"])
        return path if path.is_file() else None

    # ---------- writes ----------

    async def create(
        self,
        fields: Dict[str, Any],
        *,
        created_by: Optional[str] = None,
        attachment_bytes: Optional[bytes] = None,
        include_static_appendix: Optional[bool] = None,
    ) -> Tuple[Dict[str, Any], ArtifactResult]:
        created_by = created_by or fields.get("created_by")
        fields = strip_system_fields(fields)
        if include_static_appendix is not None:
            fields["include_static_appendix"] = include_static_appendix
        fields["include_static_appendix"] = bool(fields.get("include_static_appendix"))
        fields["language"] = fields.get("language") or detect_language(
            fields.get(name) for name in self.doc_type.language_fields
        )
        fields.setdefault("date", None)
        fields["date"] = fields["date"] or date.today().isoformat()
        fields = self.doc_type.prepare(fields)

        async with self.allocator.reserve(self.doc_type.sequence, self.collection) as reservation:
            now = _now()
            record = {
                "id": str(uuid.uuid4()),
                "document_number": reservation.display,
                "sequence": reservation.sequence,
                "sequence_value": reservation.value,
                **fields,
                "created_by": created_by,
                "created_at": now,
                "updated_at": now,
                "artifact": None,
                "attachment": None,
            }

            result = await self.pipeline.create_artifact(
                self._binding(record), self.doc_type.template, self._options(record, attachment_bytes)
            )
            record["artifact"] = result.to_record()
            try:
                if attachment_bytes and result.merge_error is None:
                    record["attachment"] = self._store_attachment(record, attachment_bytes)
                self.allocator.commit(reservation, self.collection, record)
            except BaseException:
                # nothing committed: leave no files behind
                self.pipeline.discard(result.filename)
                self._remove_attachment(record.get("attachment"))
                raise

        logger.info(
            f"✓ Created {self.doc_type.key} {record['document_number']} "
            f"({result.status}, {result.page_count} page(s))"
        )
        return record, result

    async def update(
        self,
        record_id: str,
        changes: Dict[str, Any],
        *,
        attachment_bytes: Optional[bytes] = None,
        include_static_appendix: Optional[bool] = None,
    ) -> Tuple[Dict[str, Any], ArtifactResult]:
        """
        Apply `changes` (system fields are ignored: id and document number never
        change), re-render and save. Without a new attachment the stored one,
        if any, is merged again.
        """
        changes = strip_system_fields(changes)
        if include_static_appendix is not None:
            changes["include_static_appendix"] = include_static_appendix

        async with self._record_locks(record_id):
            current = self.get(record_id)
            merged = self.doc_type.prepare({**current, **changes})
            if not merged.get("language"):
                merged["language"] = detect_language(
                    merged.get(name) for name in self.doc_type.language_fields
                )
            merged["updated_at"] = _now()

            if attachment_bytes is None:
                attachment_bytes = self._load_attachment(current.get("attachment"))

            previous_artifact = (current.get("artifact") or {}).get("filename")
            result = await self.pipeline.create_artifact(
                self._binding(merged),
                self.doc_type.template,
                self._options(merged, attachment_bytes, replaces=previous_artifact),
            )
            merged["artifact"] = result.to_record()

            previous_attachment = current.get("attachment")
            new_attachment = previous_attachment
            try:
                if attachment_bytes and result.merge_error is None:
                    new_attachment = self._store_attachment(merged, attachment_bytes)
                merged["attachment"] = new_attachment

                with self.store.collection(self.collection) as records:
                    for index, record in enumerate(records):
                        if record.get("id") == record_id:
                            records[index] = merged
                            break
                    else:
                        raise RecordNotFound(f"{self.doc_type.key} {record_id} was deleted during update")
            except BaseException:
                if result.filename != previous_artifact:
                    self.pipeline.discard(result.filename)
                if new_attachment and new_attachment != previous_attachment:
                    self._remove_attachment(new_attachment)
                raise

        if previous_artifact and previous_artifact != result.filename:
            self.pipeline.discard(previous_artifact)
        if previous_attachment and previous_attachment != new_attachment:
            self._remove_attachment(previous_attachment)

        logger.info(f"✓ Updated {self.doc_type.key} {merged['document_number']} ({result.status})")
        return merged, result

    async def regenerate(
        self,
        record_id: str,
        *,
        attachment_bytes: Optional[bytes] = None,
        include_static_appendix: Optional[bool] = None,
    ) -> Tuple[Dict[str, Any], ArtifactResult]:
        """Re-render the PDF without changing any field."""
        return await self.update(
            record_id,
            {},
            attachment_bytes=attachment_bytes,
            include_static_appendix=include_static_appendix,
        )

    def delete(self, record_id: str) -> Dict[str, Any]:
        with self.store.collection(self.collection) as records:
            for index, record in enumerate(records):
                if record.get("id") == record_id:
                    removed = records.pop(index)
                    break
            else:
                raise RecordNotFound(f"{self.doc_type.key} {record_id} not found")

        removed_files = []
        artifact = (removed.get("artifact") or {}).get("filename")
        if artifact and self.pipeline.discard(artifact):
            removed_files.append(artifact)
        attachment = removed.get("attachment")
        if attachment and self._remove_attachment(attachment):
            removed_files.append(attachment)
        self._record_locks.discard(record_id)

        logger.info(f"Deleted {self.doc_type.key} {removed.get('document_number')}")
        return {
            "deleted": True,
            "id": record_id,
            "document_number": removed.get("document_number"),
            "removed_files": removed_files,
        }

    def reset_sequence(self, value: int = 0, *, clear_records: bool = True) -> Dict[str, Any]:
        """Admin: set the counter; optionally delete every record of this type."""
        doomed = self.store.load_collection(self.collection) if clear_records else []
        deleted = self.store.reset_sequence(
            self.doc_type.sequence, value, self.collection if clear_records else None
        )
        for record in doomed:
            self.pipeline.discard((record.get("artifact") or {}).get("filename"))
            self._remove_attachment(record.get("attachment"))
        return {
            "sequence": self.doc_type.sequence,
            "value": value,
            "deleted_records": deleted,
            "next_number": self.peek_number(),
        }

    # ---------- helpers ----------

    def _binding(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Generic key/value binding handed to the template."""
        return {
            **record,
            "title_en": self.doc_type.title_en,
            "title_ar": self.doc_type.title_ar,
            "doc_code": self.doc_type.doc_code,
            "company_name": self.company_name,
        }

    def _options(
        self,
        record: Dict[str, Any],
        attachment_bytes: Optional[bytes],
        replaces: Optional[str] = None,
    ) -> ArtifactOptions:
        return ArtifactOptions(
            attachment_bytes=attachment_bytes,
            include_static_appendix=bool(record.get("include_static_appendix")),
            label=self.doc_type.label_for(record),
            doc_code=self.doc_type.doc_code,
            revision=record.get("rev_number"),
            replaces=replaces,
        )

    def _store_attachment(self, record: Dict[str, Any], data: bytes) -> str:
        name = f"{record['document_number']}_{uuid.uuid4().hex[:8]}.pdf"
        atomic_write_bytes(self.attachments_dir / name, data)
        return name

    def _load_attachment(self, name: Optional[str]) -> Optional[bytes]:
        if not name:
            return None
        path = self.attachments_dir / Path(name).name
        try:
            return path.read_bytes()
        except FileNotFoundError:
            logger.warning(f"Stored attachment {name} is missing; rendering without it")
            return None

    def _remove_attachment(self, name: Optional[str]) -> bool:
        if not name:
            return False
        return remove_quietly(self.attachments_dir / Path(name).name)

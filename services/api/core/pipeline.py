# services/api/core/pipeline.py
"""
Document assembly pipeline: record -> rendered, merged, stamped PDF artifact.

    render (fatal on failure)
      -> rasterize attachment   (Ok | Fail)
      -> load static appendix   (Ok | Fail)
      -> compose + stamp        (Ok | Degraded)
      -> atomic write into artifacts_dir

Only the render stage and the final write can fail the call. Anything wrong
with the secondary sources degrades to the base document plus merge_error.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from cachetools import TTLCache

from core.compose import ComposeEngine, ComposedDocument
from core.errors import InvalidAttachment, MergeDegraded, RenderTimeout
from core.fsutil import atomic_write_bytes, remove_quietly
from core.naming import artifact_filename
from core.overlay import RunningHeader
from core.rasterizer import AttachmentRasterizer, RasterPage
from core.renderer import DocumentRenderer
from core.results import Degraded, Fail, Ok

logger = logging.getLogger(__name__)


@dataclass
class ArtifactOptions:
    attachment_bytes: Optional[bytes] = None
    include_static_appendix: bool = False
    label: str = ""
    template_version: Optional[int] = None
    doc_code: str = ""
    revision: Optional[str] = None
    # filename of the artifact this one supersedes; never overwritten
    replaces: Optional[str] = None


@dataclass
class ArtifactResult:
    artifact_path: str
    filename: str
    page_count: int
    pages: Dict[str, int]
    merged: bool
    merge_error: Optional[str]
    template: str
    template_version: int
    language: str
    generated_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def status(self) -> str:
        return "degraded" if self.merge_error else "ok"

    @property
    def degradation(self) -> Optional[MergeDegraded]:
        return MergeDegraded(self.merge_error) if self.merge_error else None

    def to_record(self) -> Dict[str, Any]:
        """Artifact reference stored on the owning record."""
        return {
            "filename": self.filename,
            "page_count": self.page_count,
            "pages": dict(self.pages),
            "merged": self.merged,
            "merge_error": self.merge_error,
            "template": self.template,
            "template_version": self.template_version,
            "language": self.language,
            "generated_at": self.generated_at,
        }


class ArtifactPipeline:
    def __init__(
        self,
        renderer: DocumentRenderer,
        rasterizer: AttachmentRasterizer,
        composer: ComposeEngine,
        *,
        artifacts_dir: str,
        static_appendix_path: Optional[str] = None,
        static_cache_ttl_s: int = 600,
        rasterize_static_appendix: bool = False,
        attachment_mode: str = "raster",
        company_name: str = "",
        logo_path: Optional[str] = None,
        default_revision: str = "01",
        max_parallel: int = 2,
    ):
        if attachment_mode not in ("raster", "pages"):
            raise ValueError(f"attachment_mode must be 'raster' or 'pages', got {attachment_mode!r}")
        self.renderer = renderer
        self.rasterizer = rasterizer
        self.composer = composer
        self.artifacts_dir = Path(artifacts_dir)
        self.static_appendix_path = static_appendix_path
        self.rasterize_static_appendix = rasterize_static_appendix
        self.attachment_mode = attachment_mode
        self.company_name = company_name
        self.logo_path = logo_path or None
        self.default_revision = default_revision
        self._max_parallel = max(1, max_parallel)
        self._slots: Optional[asyncio.Semaphore] = None

        # (path, mtime_ns) -> bytes; a replaced appendix file is picked up on next use
        self._static_cache: TTLCache = TTLCache(maxsize=4, ttl=static_cache_ttl_s)
        self._static_lock = threading.Lock()

    # ---------- public API ----------

    def artifact_path(self, filename: str) -> Path:
        path = (self.artifacts_dir / filename).resolve()
        if path.parent != self.artifacts_dir.resolve():
            raise ValueError(f"Invalid artifact name: {filename!r}")
        return path

    def discard(self, filename: Optional[str]) -> bool:
        if not filename:
            return False
        removed = remove_quietly(self.artifact_path(filename))
        if removed:
            logger.info(f"Removed artifact {filename}")
        return removed

    async def create_artifact(
        self,
        record: Mapping[str, Any],
        template: str,
        options: Optional[ArtifactOptions] = None,
    ) -> ArtifactResult:
        """
        Render `record` with `template`, merge optional attachment/static
        appendix, stamp header/footer and persist the artifact.

        Raises TemplateNotFound, RenderTimeout, RenderFailed (no artifact
        written) or StorageUnavailable. Merge problems never raise.
        """
        options = options or ArtifactOptions()
        document_number = str(record["document_number"])
        language = record.get("language") or "en"
        issue_date = _issue_date(record.get("date"))

        header = RunningHeader(
            document_number=document_number,
            issue_date=issue_date,
            doc_code=options.doc_code,
            revision=str(options.revision or record.get("rev_number") or self.default_revision),
            language=language,
            company_name=self.company_name,
            logo_path=self.logo_path,
        )

        async with self._semaphore():
            rendered = await self.renderer.render(
                template, record, language=language, version=options.template_version
            )

            failures: List[str] = []
            secondaries: Dict[str, Any] = {}

            if options.attachment_bytes:
                attached = await self._attachment_stage(options.attachment_bytes)
                if isinstance(attached, Ok):
                    secondaries.update(attached.value)
                else:
                    failures.append(attached.reason)

            if options.include_static_appendix:
                appendix = await self._static_stage()
                if isinstance(appendix, Ok):
                    secondaries.update(appendix.value)
                else:
                    failures.append(appendix.reason)

            if failures:
                # A partly merged document would look complete; ship the base alone.
                secondaries = {}

            outcome = await asyncio.to_thread(
                self.composer.compose, rendered.pdf_bytes, header, **secondaries
            )

        composed: ComposedDocument = outcome.value
        if isinstance(outcome, Degraded):
            failures.append(outcome.reason)
        merge_error = "; ".join(failures) or None

        filename = artifact_filename(document_number, options.label, issue_date)
        if filename == options.replaces:
            # the current artifact stays intact until the owning record is saved
            stamp = datetime.now(timezone.utc).strftime("%H%M%S%f")
            filename = artifact_filename(document_number, options.label, issue_date, suffix=f"r{stamp}")
        path = await asyncio.to_thread(atomic_write_bytes, self.artifact_path(filename), composed.pdf_bytes)

        if merge_error:
            logger.warning(f"⚠ {document_number}: artifact degraded to base document ({merge_error})")
        logger.info(f"✓ Artifact {filename}: {composed.page_count} page(s), merged={composed.merged}")

        return ArtifactResult(
            artifact_path=str(path),
            filename=filename,
            page_count=composed.page_count,
            pages=composed.pages.to_dict(),
            merged=composed.merged,
            merge_error=merge_error,
            template=rendered.template_name,
            template_version=rendered.template_version,
            language=rendered.language,
        )

    # ---------- stages ----------

    def _semaphore(self) -> asyncio.Semaphore:
        # created lazily so it binds to the running loop
        if self._slots is None:
            self._slots = asyncio.Semaphore(self._max_parallel)
        return self._slots

    async def _attachment_stage(self, attachment_bytes: bytes):
        if self.attachment_mode == "pages":
            return Ok({"attachment_pdf": attachment_bytes})
        try:
            images = await self.rasterizer.rasterize(attachment_bytes)
        except (InvalidAttachment, RenderTimeout) as e:
            return Fail(f"Attachment skipped: {e}", e)
        return Ok({"attachment_images": images})

    async def _static_stage(self):
        appendix = self.load_static_appendix()
        if isinstance(appendix, Fail) or not self.rasterize_static_appendix:
            return appendix
        try:
            images: List[RasterPage] = await self.rasterizer.rasterize(appendix.value["static_pdf"])
        except (InvalidAttachment, RenderTimeout) as e:
            return Fail(f"Static appendix skipped: {e}", e)
        return Ok({"static_images": images})

    def load_static_appendix(self):
        """Ok({"static_pdf": bytes}) or Fail(reason). Cached by path + mtime."""
        if not self.static_appendix_path:
            return Fail("No static appendix configured")
        path = Path(self.static_appendix_path)
        try:
            key = (str(path), path.stat().st_mtime_ns)
        except FileNotFoundError:
            logger.warning(f"Static appendix not found at {path}")
            return Fail(f"Static appendix not found: {path.name}")

        with self._static_lock:
            data = self._static_cache.get(key)
            if data is None:
                try:
                    data = path.read_bytes()
                except OSError as e:
                    return Fail(f"Static appendix unreadable: {e}", e)
                self._static_cache[key] = data
                logger.info(f"Loaded static appendix {path.name} ({len(data)} bytes)")
        return Ok({"static_pdf": data})


def _issue_date(value: Any) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str) and value.strip():
        return value.strip()[:10]
    return date.today().isoformat()

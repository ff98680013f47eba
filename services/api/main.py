"""
Back office document service - FastAPI backend

Purchase orders, price quotes, receipts, material requests and RFQs stored as
JSON collections, each rendered to a numbered, paginated PDF.

Install dependencies:
pip install -e ".[test]"

Run server:
uvicorn main:app --host 0.0.0.0 --port 8000
"""

import contextvars
import logging
import os
import tempfile
import time
import uuid
from pathlib import Path
from typing import Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from adapters.base import DocumentStore
from adapters.json import JsonAdapter
from core.compose import ComposeEngine
from core.counter import CounterAllocator
from core.errors import BackOfficeError
from core.pipeline import ArtifactPipeline
from core.rasterizer import AttachmentRasterizer
from core.records import RecordService
from core.renderer import DocumentRenderer
from core.templates import TemplateStore
from models import DOCUMENT_TYPES
from routers.records import build_router
from settings import Settings, get_settings

VERSION = "1.0"

# ========== Request Context for Tracing ==========
request_id_var = contextvars.ContextVar('request_id', default=None)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# ============================================================================
# SERVICE WIRING
# ============================================================================

def build_services(settings: Settings) -> Dict[str, RecordService]:
    """
    Build the process-wide store, allocator and document pipeline once and
    hand the same instances to every record service.
    """
    store: DocumentStore = JsonAdapter(settings.data_dir, settings.counters_file)
    allocator = CounterAllocator(
        store,
        width=settings.id_width,
        prefixes={t.sequence: t.sequence for t in DOCUMENT_TYPES.values()},
    )

    templates = TemplateStore(settings.templates_dir)
    renderer = DocumentRenderer(
        templates,
        font_path=settings.font_path or None,
        timeout_s=settings.render_timeout_s,
        settle_timeout_s=settings.settle_timeout_s,
    )
    rasterizer = AttachmentRasterizer(
        max_width=settings.raster_max_width,
        max_height=settings.raster_max_height,
        quality=settings.raster_quality,
        scale=settings.raster_scale,
        timeout_s=settings.render_timeout_s,
        settle_timeout_s=settings.settle_timeout_s,
    )
    pipeline = ArtifactPipeline(
        renderer,
        rasterizer,
        ComposeEngine(font_path=settings.font_path or None),
        artifacts_dir=settings.artifacts_dir,
        static_appendix_path=settings.static_appendix_path or None,
        static_cache_ttl_s=settings.static_appendix_cache_ttl_s,
        rasterize_static_appendix=settings.rasterize_static_appendix,
        attachment_mode=settings.attachment_mode,
        company_name=settings.company_name,
        logo_path=settings.logo_path or None,
        default_revision=settings.default_revision,
        max_parallel=settings.max_parallel_renders,
    )

    return {
        key: RecordService(
            doc_type,
            store,
            allocator,
            pipeline,
            attachments_dir=settings.attachments_dir,
            company_name=settings.company_name,
        )
        for key, doc_type in DOCUMENT_TYPES.items()
    }


def _data_dir_writable(data_dir: str) -> Optional[str]:
    """None when we can create and remove a file in data_dir, else the error text."""
    try:
        Path(data_dir).mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=data_dir, prefix=".probe-"):
            pass
    except OSError as e:
        return str(e)
    return None


# ============================================================================
# FASTAPI APP
# ============================================================================

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="Back Office Document API",
        description="Numbered commercial documents with generated PDFs",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.services = build_services(settings)

    # ========== Request Tracing Middleware ==========
    @app.middleware("http")
    async def request_tracing_middleware(request: Request, call_next):
        """Add request_id and timing to all requests."""
        request_id = str(uuid.uuid4())[:8]
        request_id_var.set(request_id)
        started = time.time()

        response = await call_next(request)

        latency_ms = round((time.time() - started) * 1000, 2)
        logger.info(
            f"[{request_id}] {request.method} {request.url.path} -> {response.status_code} ({latency_ms} ms)"
        )
        response.headers["X-Request-ID"] = request_id
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BackOfficeError)
    async def backoffice_exception_handler(request: Request, exc: BackOfficeError):
        if exc.status_code >= 500:
            logger.error(f"[{request_id_var.get()}] {exc.code}: {exc.message}")
        else:
            logger.info(f"[{request_id_var.get()}] {exc.code}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.code},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"}
        )

    # ============================================================================
    # ENDPOINTS
    # ============================================================================

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        problem = _data_dir_writable(settings.data_dir)
        if problem:
            logger.error(f"Health check failed: {problem}")
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "unhealthy", "data_dir": settings.data_dir, "error": problem},
            )
        return {
            "status": "healthy",
            "data_dir": settings.data_dir,
            "document_types": sorted(DOCUMENT_TYPES),
            "version": VERSION,
        }

    @app.get("/healthz")
    async def healthz():
        """
        Liveness probe.
        Fast check - is the process alive and responding?
        """
        return {"status": "ok", "timestamp": time.time(), "version": VERSION}

    @app.get("/readyz")
    async def readyz():
        """
        Readiness probe: templates present and data directory writable.
        Returns 200 if ready, 503 if not ready.
        """
        checks = {
            "data_dir": _data_dir_writable(settings.data_dir) is None,
            "templates": os.path.isdir(settings.templates_dir),
        }
        ready = all(checks.values())
        return JSONResponse(
            status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "ready" if ready else "not_ready", "checks": checks},
        )

    for doc_type in DOCUMENT_TYPES.values():
        app.include_router(build_router(doc_type))

    @app.on_event("startup")
    async def startup_event():
        logger.info(f"🚀 Back office API v{VERSION} starting (data_dir={settings.data_dir})")
        if not os.path.isfile(settings.static_appendix_path or ""):
            logger.warning(f"Static appendix not found at {settings.static_appendix_path}")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Back office API shutting down")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)

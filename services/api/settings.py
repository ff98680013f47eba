# services/api/settings.py
from pydantic_settings import BaseSettings
from pydantic import ConfigDict, Field
from typing import List
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


class Settings(BaseSettings):
    # Storage settings (one JSON file per collection + counters file)
    data_dir: str = "data"
    counters_file: str = "counters.json"
    artifacts_dir: str = "data/artifacts"
    attachments_dir: str = "data/attachments"

    # Templates & fixed assets
    templates_dir: str = str(BASE_DIR / "assets" / "templates")
    static_appendix_path: str = str(BASE_DIR / "assets" / "static" / "terms-and-conditions.pdf")
    # How long the loaded appendix bytes stay cached (file mtime is part of the key anyway)
    static_appendix_cache_ttl_s: int = 600
    # Embed the appendix as page images instead of vector pages
    rasterize_static_appendix: bool = False

    # Branding for the running header/footer
    company_name: str = "Back Office"
    logo_path: str = ""
    # TTF with Arabic coverage (a "<stem>-Bold" sibling is used for bold text).
    # "" selects core Helvetica: English labels only, Arabic field values cannot be rendered.
    font_path: str = str(BASE_DIR / "assets" / "fonts" / "DejaVuSans.ttf")
    default_revision: str = "01"

    # Document numbers: PREFIX + zero padded counter (PO0007)
    id_width: int = Field(default=4, ge=1, le=12)

    # Rendering engine bounds
    render_timeout_s: float = 60.0
    # Time allowed for a timed-out worker to tear down before we give up on it
    settle_timeout_s: float = 15.0
    # Max number of render/compose jobs running in parallel per instance
    max_parallel_renders: int = 2

    # Attachment rasterization
    raster_max_width: int = 850
    raster_max_height: int = 1100
    raster_quality: int = Field(default=94, ge=1, le=100)
    # pdfium scale factor (2.0 ≈ 144 DPI)
    raster_scale: float = 2.0
    # "raster" = one image page per attachment page, "pages" = vector pages fit to A4
    attachment_mode: str = "raster"

    # CORS settings
    allowed_origins: str = "http://localhost:3000,http://localhost:8000"

    # Upload limit for attachments (MB)
    max_upload_mb: int = 25

    model_config = ConfigDict(
        # Always load .env from the same folder as this settings.py
        env_file=str(BASE_DIR / ".env"),
        extra="ignore",
    )

    def get_origins_list(self) -> List[str]:
        """Parse comma-separated origins into a list."""
        if not self.allowed_origins:
            return ["*"]
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


_settings_instance = None

def get_settings() -> Settings:
    """Singleton pattern for settings."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance

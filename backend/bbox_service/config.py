from pydantic_settings import BaseSettings
from functools import lru_cache
import os


class Settings(BaseSettings):
    port: int = 8080
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]

    # Browser
    headless: bool = True
    chrome_bin: str = ""  # empty -> Playwright's bundled Chromium
    navigation_timeout_ms: int = 128000
    desktop_viewport_width: int = 1280
    desktop_viewport_height: int = 800
    mobile_viewport_width: int = 375
    mobile_viewport_height: int = 812

    # Extraction
    target_selectors: list[str] = ["form", "button", ".form", ".button"]
    batch_size: int = 5

    # Snapshots
    snapshot_concurrency: int = 5
    snapshot_padding: int = 20
    snapshot_compress: bool = True
    snapshot_max_width: int = 1280
    snapshot_quality: int = 75

    # Row source (RUM bundles)
    bundles_url: str = "https://bundles.aem.page/bundles"
    bundles_domainkey: str = ""
    default_checkpoint: str = "click"
    bundles_timeout: float = 30.0

    # Session snapshots
    session_backend: str = "file"  # "file" or "supabase"
    session_dir: str = ".sessions"
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_sessions_table: str = "bbox_sessions"

    class Config:
        # Look for .env in the repo root (two levels up from backend/bbox_service/)
        # In containers env vars are injected directly; .env is optional
        _env_path = os.path.join(os.path.dirname(__file__), "..", "..", ".env")
        env_file = _env_path if os.path.exists(_env_path) else None
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings():
    return Settings()

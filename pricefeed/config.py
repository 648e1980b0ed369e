"""Configuration management from environment variables."""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file
load_dotenv()

# Project root
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(PROJECT_ROOT / "data")))
LOCAL_DB = DATA_DIR / "pricefeed.db"
LOCAL_BLOB_DIR = DATA_DIR / "blobs"


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _optional_int(name: str) -> int | None:
    value = os.getenv(name)
    return int(value) if value else None


class Config:
    """Application configuration."""

    # Backends
    STORE_BACKEND: str = os.getenv("STORE_BACKEND", "supabase")
    BLOB_BACKEND: str = os.getenv("BLOB_BACKEND", "local" if STORE_BACKEND == "sqlite" else "supabase")

    # Supabase
    SUPABASE_URL: str | None = os.getenv("SUPABASE_URL")
    SUPABASE_SERVICE_ROLE: str | None = os.getenv("SUPABASE_SERVICE_ROLE") or os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    STORAGE_BUCKET: str = os.getenv("STORAGE_BUCKET", "raw-prices")
    STORAGE_OVERWRITE: bool = _flag("STORAGE_OVERWRITE")

    # HTTP
    USER_AGENT: str = os.getenv("USER_AGENT", "SmartCartPriceCollector/1.0")
    ACCEPT_LANGUAGE: str = os.getenv("ACCEPT_LANGUAGE", "he-IL,he;q=0.9,en;q=0.8")
    TIMEOUT: int = int(os.getenv("TIMEOUT", "60"))
    RATE_PER_DOMAIN: float = float(os.getenv("RATE_PER_DOMAIN", "2.0"))
    PER_HOST_CONCURRENCY: int = int(os.getenv("PER_HOST_CONCURRENCY", "2"))
    MAX_RETRIES: int = int(os.getenv("MAX_RETRIES", "3"))
    HTTP2: bool = _flag("HTTP2", "1")

    # Collect
    CONCURRENCY: int = int(os.getenv("CONCURRENCY", "1"))
    MAX_PAGES: int = int(os.getenv("MAX_PAGES", "10"))
    MAX_DOWNLOADS: int = int(os.getenv("MAX_DOWNLOADS", "50"))
    MAX_FILE_ATTEMPTS: int = int(os.getenv("MAX_FILE_ATTEMPTS", "3"))
    DISCOVERY_TIMEOUT: float = float(os.getenv("DISCOVERY_TIMEOUT", "300"))
    DOWNLOAD_TIMEOUT: float = float(os.getenv("DOWNLOAD_TIMEOUT", "180"))
    STOP_AFTER_MINUTES: int | None = _optional_int("STOP_AFTER_MINUTES")
    MAX_CONSECUTIVE_ERRORS: int | None = _optional_int("MAX_CONSECUTIVE_ERRORS")
    BROWSER_HEADLESS: bool = _flag("BROWSER_HEADLESS", "1")

    # Decode / aggregate
    DECODE_BATCH_LIMIT: int = int(os.getenv("DECODE_BATCH_LIMIT", "50"))
    UPSERT_BATCH_SIZE: int = int(os.getenv("UPSERT_BATCH_SIZE", "500"))
    AGGREGATE_DAYS_BACK: int = int(os.getenv("AGGREGATE_DAYS_BACK", "2"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # API Security
    API_KEY: str | None = os.getenv("API_KEY")

    @staticmethod
    def chain_setting(chain: str, key: str, default: str | None = None) -> str | None:
        """Read a per-chain setting such as YOHANANOF_USERNAME."""
        return os.getenv(f"{chain.upper()}_{key}", default)

    @classmethod
    def seed_urls(cls, chain: str) -> list[str]:
        """Operator-supplied seed URLs for a chain (comma separated)."""
        raw = cls.chain_setting(chain, "SEED_URLS", "") or ""
        return [u.strip() for u in raw.split(",") if u.strip()]

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration."""
        errors = []
        if cls.STORE_BACKEND not in ("supabase", "sqlite"):
            errors.append(f"STORE_BACKEND must be supabase or sqlite (got {cls.STORE_BACKEND!r})")
        if cls.BLOB_BACKEND not in ("supabase", "local"):
            errors.append(f"BLOB_BACKEND must be supabase or local (got {cls.BLOB_BACKEND!r})")
        if "supabase" in (cls.STORE_BACKEND, cls.BLOB_BACKEND):
            if not cls.SUPABASE_URL:
                errors.append("SUPABASE_URL is required")
            if not cls.SUPABASE_SERVICE_ROLE:
                errors.append("SUPABASE_SERVICE_ROLE is required")
        if cls.MAX_FILE_ATTEMPTS < 1:
            errors.append("MAX_FILE_ATTEMPTS must be >= 1")
        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")

    @classmethod
    def use_local(cls) -> None:
        """Switch to the local SQLite + filesystem backends."""
        cls.STORE_BACKEND = "sqlite"
        cls.BLOB_BACKEND = "local"


config = Config()

# inventory/config.py
import os
from dataclasses import dataclass


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


@dataclass
class Settings:
    # Source selection: the spreadsheet export is the legacy fallback
    use_sheet_source: bool = False

    square_application_id: str = ""
    square_access_token: str = ""
    square_location_id: str = ""
    square_environment: str = "sandbox"  # sandbox|production
    square_api_version: str = "2023-10-18"

    google_sheet_id: str = ""
    google_sheet_gid: str = "0"
    sheet_export_url: str = ""

    sync_api_key: str = ""
    cron_secret: str = ""

    write_concurrency: int = 8
    http_timeout: float = 30.0
    http_retries: int = 3
    sync_timeout_seconds: float = 0.0  # 0 = no deadline
    auto_sync_minutes: int = 30
    poll_minutes: int = 30

    db_path: str = "/data/catalog.sqlite3"

    @property
    def source_name(self) -> str:
        return "sheet" if self.use_sheet_source else "square"

    @property
    def square_base_url(self) -> str:
        if self.square_environment == "production":
            return "https://connect.squareup.com/v2"
        return "https://connect.squareupsandbox.com/v2"

    @property
    def sheet_url(self) -> str:
        if self.sheet_export_url:
            return self.sheet_export_url
        return (
            f"https://docs.google.com/spreadsheets/d/{self.google_sheet_id}"
            f"/export?format=csv&gid={self.google_sheet_gid}"
        )

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            use_sheet_source=_env_bool("USE_SHEET_SOURCE"),
            square_application_id=os.getenv("SQUARE_APPLICATION_ID", "").strip(),
            square_access_token=os.getenv("SQUARE_ACCESS_TOKEN", "").strip(),
            square_location_id=os.getenv("SQUARE_LOCATION_ID", "").strip(),
            square_environment=os.getenv("SQUARE_ENVIRONMENT", "sandbox").strip().lower(),
            square_api_version=os.getenv("SQUARE_API_VERSION", "2023-10-18").strip(),
            google_sheet_id=os.getenv("GOOGLE_SHEET_ID", "").strip(),
            google_sheet_gid=os.getenv("GOOGLE_SHEET_GID", "0").strip(),
            sheet_export_url=os.getenv("SHEET_EXPORT_URL", "").strip(),
            sync_api_key=os.getenv("SYNC_API_KEY", "").strip(),
            cron_secret=os.getenv("CRON_SECRET", "").strip(),
            write_concurrency=max(1, _env_int("SYNC_WRITE_CONCURRENCY", 8)),
            http_timeout=_env_float("HTTP_TIMEOUT", 30.0),
            http_retries=max(1, _env_int("HTTP_RETRIES", 3)),
            sync_timeout_seconds=_env_float("SYNC_TIMEOUT_SECONDS", 0.0),
            auto_sync_minutes=max(1, _env_int("AUTO_SYNC_MINUTES", 30)),
            poll_minutes=max(1, _env_int("POLL_MINUTES", 30)),
            db_path=os.getenv("DB_PATH", "/data/catalog.sqlite3"),
        )

"""Application configuration management."""

import os
from datetime import tzinfo
from pathlib import Path
from typing import List, Optional
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

# Load environment variables from project-level .env if available
PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=PROJECT_ROOT / ".env")


class Settings:
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = os.getenv("APP_NAME", "Transit Route Collector")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    environment: str = os.getenv("ENVIRONMENT", "development")
    debug: bool = os.getenv("DEBUG", "True") == "True"

    # Server
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8000"))
    reload: bool = os.getenv("RELOAD", "True") == "True"

    # Browser session
    collector_base_url: str = os.getenv("COLLECTOR_BASE_URL", "https://2gis.uz")
    collector_search_query: str = os.getenv("COLLECTOR_SEARCH_QUERY", "Маршруты автобусов")
    collector_headless: bool = os.getenv("COLLECTOR_HEADLESS", "True") == "True"
    collector_timeout_ms: int = int(os.getenv("COLLECTOR_TIMEOUT_MS", "90000"))
    collector_selector_timeout_ms: int = int(os.getenv("COLLECTOR_SELECTOR_TIMEOUT_MS", "20000"))
    collector_schedule_tab_attempts: int = int(os.getenv("COLLECTOR_SCHEDULE_TAB_ATTEMPTS", "3"))
    collector_schedule_tab_timeout_ms: int = int(os.getenv("COLLECTOR_SCHEDULE_TAB_TIMEOUT_MS", "10000"))
    collector_typing_delay_ms: int = int(os.getenv("COLLECTOR_TYPING_DELAY_MS", "100"))
    collector_max_pages: int = int(os.getenv("COLLECTOR_MAX_PAGES", "0"))  # 0 = no cap
    collector_mailbox_size: int = int(os.getenv("COLLECTOR_MAILBOX_SIZE", "256"))

    # Remote API traffic recognised by the response observer
    detail_url_marker: str = os.getenv("DETAIL_URL_MARKER", "byid")
    schedule_url_marker: str = os.getenv(
        "SCHEDULE_URL_MARKER", "routing.api.2gis.com/ctx/search_schedule"
    )
    schedule_timezone_name: str = os.getenv("SCHEDULE_TIMEZONE", "")

    # Output
    routes_dir: str = os.getenv("ROUTES_DIR", "routes")
    direction_forward_label: str = os.getenv("DIRECTION_FORWARD_LABEL", "outbound")
    direction_return_label: str = os.getenv("DIRECTION_RETURN_LABEL", "return")

    # CORS
    cors_origins: List[str] = [
        origin.strip()
        for origin in os.getenv(
            "CORS_ALLOW_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000,http://localhost:8000",
        ).split(",")
        if origin.strip()
    ]
    cors_allow_credentials: bool = True

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_format: str = os.getenv("LOG_FORMAT", "json")
    log_buffer_size: int = int(os.getenv("LOG_BUFFER_SIZE", "1000"))

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment.lower() == "development"

    @property
    def schedule_timezone(self) -> Optional[tzinfo]:
        """Timezone used to render schedule work hours (None means local wall clock)."""
        name = self.schedule_timezone_name.strip()
        if not name:
            return None
        return ZoneInfo(name)

    @property
    def routes_path(self) -> Path:
        """Root directory for persisted route artifacts."""
        return Path(self.routes_dir)


# Global settings instance
settings = Settings()

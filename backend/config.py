"""Centralized configuration: all env vars in one place."""

import os

# Response cache TTL per route, in seconds
ROUTE_TTLS = {
    "home": 180,
    "series_detail": 180,
    "series_list": 300,
    "read_chapter": 600,
    "search": 120,
    "genres": 3600,
    "archive": 300,
}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self):
        self.cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
        self.git_sha: str = os.getenv("GIT_SHA", "unknown")
        self.environment: str = os.getenv("ENVIRONMENT", "local")

        # Catalog
        self.database_path: str = os.getenv("CATALOG_DB_PATH", "catalog.db")
        self.site_name: str = os.getenv("SITE_NAME", "DoujinShi")
        self.site_url: str = os.getenv("SITE_URL", "").rstrip("/")
        self.page_size: int = int(os.getenv("PAGE_SIZE", "24"))

        # Response cache
        self.cache_sweep_interval_seconds: float = float(
            os.getenv("CACHE_SWEEP_INTERVAL_SECONDS", "300")
        )
        self.cache_coalesce: bool = _env_bool("CACHE_COALESCE", False)
        self.cache_error_responses: bool = _env_bool("CACHE_ERROR_RESPONSES", True)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def validate(self) -> list[str]:
        """Return list of configuration problems (empty when valid)."""
        problems = []
        if not os.getenv("CATALOG_DB_PATH"):
            problems.append(f"CATALOG_DB_PATH not set, using {self.database_path}")
        if self.is_production and not self.site_url:
            problems.append("SITE_URL not set, canonical URLs will be relative")
        if self.page_size < 1:
            problems.append(f"PAGE_SIZE must be positive, got {self.page_size}")
        if self.cache_sweep_interval_seconds <= 0:
            problems.append(
                f"CACHE_SWEEP_INTERVAL_SECONDS must be positive, got {self.cache_sweep_interval_seconds}"
            )
        return problems


settings = Settings()

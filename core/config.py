from typing import List, Tuple

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # GitHub
    github_token: str = Field(default="")
    repo_owner: str = Field(default="")
    repo_name: str = Field(default="")
    github_api_url: str = Field(default="https://api.github.com/graphql")

    # Google Sheets
    google_sheets_id: str = Field(default="")
    google_sheets_api_key: str = Field(default="")
    google_sheets_access_token: str = Field(default="")
    google_sheets_api_url: str = Field(default="https://sheets.googleapis.com/v4/spreadsheets")
    google_sheets_range_columns: str = Field(default="A:F")
    sheets_page_size: int = Field(default=500)

    # API
    api_token: str = Field(default="")
    allowed_origins: str = Field(default="http://localhost:3000")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    # Database Configuration
    database_url: str = Field(default="sqlite:///./metrics.db")
    database_pool_size: int = Field(default=5)
    database_max_overflow: int = Field(default=10)

    # Cache
    cache_ttl_seconds: int = Field(default=3600)
    cache_max_size: int = Field(default=1000)

    # Timeouts
    http_timeout_seconds: int = Field(default=30)
    source_fetch_timeout_seconds: float = Field(default=300)
    request_timeout_seconds: float = Field(default=120)
    sse_timeout_seconds: float = Field(default=300)
    heartbeat_interval_seconds: float = Field(default=15)

    default_time_period_days: int = Field(default=90)

    @property
    def allowed_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def repository(self) -> Tuple[str, str]:
        """Return (owner, name); REPO_NAME may carry both as ``owner/name``."""
        if "/" in self.repo_name:
            owner, name = self.repo_name.split("/", 1)
            return owner, name
        return self.repo_owner, self.repo_name

    def validate(self) -> None:
        errors = []
        owner, name = self.repository
        if not self.github_token:
            errors.append("GITHUB_TOKEN is required")
        if not owner or not name:
            errors.append("REPO_OWNER and REPO_NAME are required")
        if not self.google_sheets_id:
            errors.append("GOOGLE_SHEETS_ID is required")
        if not self.google_sheets_api_key and not self.google_sheets_access_token:
            errors.append("GOOGLE_SHEETS_API_KEY or GOOGLE_SHEETS_ACCESS_TOKEN is required")
        if not self.api_token:
            errors.append("API_TOKEN is required")
        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")

from typing import List

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    log_level: str = "INFO"

    # Transform backend (upload, detect, mapping, status endpoints)
    api_base_url: str = "http://localhost:8000"
    api_timeout_seconds: float = 30.0

    # Status tracking
    status_poll_interval_seconds: float = 2.0  # Fixed delay between status fetches

    # Mapping validation
    low_confidence_threshold: float = 0.7  # Mappings below this confidence raise a warning

    # Upload guard rails
    upload_max_file_size_mb: int = 50
    allowed_upload_extensions: List[str] = [".csv", ".xlsx", ".xls"]

    # Comma-separated list consumed by the CORS middleware
    allowed_origins: str = "http://localhost:5173,http://localhost:3000"

    model_config = ConfigDict(env_file=".env", extra="ignore")


settings = Settings()

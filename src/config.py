# src/config.py
"""Application configuration via environment variables."""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Jenkins runner
    jenkins_url: str = "http://localhost:8080"
    jenkins_user: str = "admin"
    jenkins_token: str = ""
    jenkins_job_name: str = "scan-pipeline"
    jenkins_timeout_seconds: float = 10.0
    # Attempts for buildWithParameters; a retried trigger can start a second build
    jenkins_trigger_attempts: int = 1

    # API key for client-facing endpoints
    api_key: str = ""
    api_key_header: str = "x-api-key"

    # HTTP surface
    cors_allowed_origins: List[str] = ["*"]
    rate_limit_enabled: bool = True
    # limits-style expression applied per client IP
    rate_limit: str = "100 per 15 minutes"
    rate_limit_storage_uri: str = "memory://"

    # Database
    database_url: str = "sqlite:///./scan_jobs.db"

    # Server
    environment: str = "development"
    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()

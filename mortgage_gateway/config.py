"""Configuration management using Pydantic Settings"""

from typing import List, Literal
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./mortgage_gateway.db"

    # Registry
    admin_identity: str = "admin"
    authorized_originators: List[str] = []

    # Custody
    custody_backend: Literal["memory", "http"] = "memory"
    custody_api_base: str = "http://localhost:8003"

    # Service
    service_name: str = "mortgage-gateway"
    log_level: str = "INFO"

    # HTTP Client
    http_timeout_seconds: float = 5.0
    custody_max_retries: int = 5
    custody_backoff_base: float = 1.0  # Exponential backoff base in seconds


settings = Settings()

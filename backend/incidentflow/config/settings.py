"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "incident_workflow_dev"

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"

    # Server (run.py)
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    # CORS - set to "*" to allow all origins
    cors_origins: str = "*"

    # SLA monitor
    sla_monitor_enabled: bool = True
    sla_check_interval_seconds: int = 300  # 5 minutes

    # Transition actions
    webhook_timeout_seconds: float = 30.0
    async_action_workers: int = 4

    # Revisions
    revision_description_max_length: int = 50

    # Environment
    environment: str = "development"
    debug: bool = True

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string to list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()

"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import List, Optional
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
    mongo_db: str = "flowengine_dev"

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"

    # CORS - set to "*" to allow all origins
    cors_origins: str = "*"

    # Frontend URL (for links in notifications)
    frontend_url: str = "http://localhost:3000"

    # Engine
    max_steps_per_invocation: int = 100  # Nodes a single start/resume may traverse
    execution_lock_seconds: int = 300  # Lease on an execution while its step loop runs
    integration_default_timeout_ms: int = 10000
    strict_assignment_resolution: bool = False  # Fail the node when a dynamic assignee cannot be resolved
    site_manager_role: str = "Site Manager"

    # Scheduler
    scheduler_enabled: bool = True
    sla_sweep_interval_seconds: int = 60

    # Notification channels
    slack_webhook_url: Optional[str] = None
    sms_gateway_url: Optional[str] = None
    sms_api_key: Optional[str] = None
    notification_timeout_seconds: float = 10.0

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

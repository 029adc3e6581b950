from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    LOG_LEVEL: str = "INFO"

    # Store settings ("memory" or "redis")
    STORE_BACKEND: str = "memory"
    REDIS_URL: str | None = None
    REDIS_MAX_CONNECTIONS: int = 20
    REDIS_SOCKET_TIMEOUT: float = 10.0

    # Scheduling
    SCHEDULER_TIMEZONE: str | None = None  # IANA name; unset = host local time

    # Webhook delivery
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0
    DISPATCH_MAX_CONCURRENCY: int = 10
    USER_AGENT: str = "remindhook-reminder-bot/0.1.0"

    # Shared secret for the remote execute endpoints
    REMINDER_EXECUTION_TOKEN: str | None = None

    # Execution log retention
    EXECUTION_LOG_RETENTION_DAYS: int = 90

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def uses_redis(self) -> bool:
        return self.STORE_BACKEND.strip().lower() == "redis"

    def get_redis_pool_config(self) -> dict:
        """
        Get Redis pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "max_connections": self.REDIS_MAX_CONNECTIONS,
            "socket_connect_timeout": self.REDIS_SOCKET_TIMEOUT,
            "socket_timeout": self.REDIS_SOCKET_TIMEOUT,
        }

        if self.environment == "development":
            # More conservative for local development
            config.update({"max_connections": min(self.REDIS_MAX_CONNECTIONS, 8)})

        return config


settings = Settings()

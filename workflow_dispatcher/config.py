from functools import lru_cache
from typing import Dict, List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):

    # Application
    APP_NAME: str = "Workflow Dispatcher"
    APP_VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"
    HOST: str = "localhost"
    PORT: int = 3000
    WEBHOOK_PATH: str = "/api/webhook"

    # GitHub
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_WEBHOOK_SECRET: Optional[str] = None
    GITHUB_APP_ID: Optional[str] = None
    GITHUB_APP_PRIVATE_KEY: Optional[str] = None
    GITHUB_TOKENS: List[str] = []

    # Workflow selection for push events
    DISPATCH_WORKFLOW_KEYWORD: str = "sdk"
    DISPATCH_INPUTS: Dict[str, str] = {"version": "1.0.0"}

    # Run monitoring
    MONITOR_WARMUP_SECONDS: float = 5.0
    MONITOR_POLL_INTERVAL_SECONDS: float = 10.0
    MONITOR_MAX_ATTEMPTS: int = 60
    MONITOR_PAGE_SIZE: int = 5

    # Database (PostgreSQL). Leaving DATABASE_URL and DB_NAME unset disables tracking.
    DATABASE_URL: Optional[str] = None
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: Optional[str] = None
    DB_USER: Optional[str] = None
    DB_PASSWORD: Optional[str] = None
    DB_POOL_MAX: int = 20
    DB_IDLE_TIMEOUT: float = 30.0
    DB_CONNECTION_TIMEOUT: float = 2.0
    DB_CREATE_SCHEMA: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def database_configured(self) -> bool:
        return bool(self.DATABASE_URL or self.DB_NAME)

    @property
    def github_app_configured(self) -> bool:
        return bool(self.GITHUB_APP_ID and self.GITHUB_APP_PRIVATE_KEY)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_ENV: str = "local"  # local | test | production
    APP_NAME: str = "boilerplate-api"
    API_PREFIX: str = "/api"

    DATABASE_URL: str
    REDIS_URL: str

    JWT_SECRET: str = "change_me_access"
    JWT_TTL_MINUTES: int = 60
    JWT_REFRESH_SECRET: str = "change_me_refresh"
    JWT_REFRESH_TTL_DAYS: int = 7

    CORS_ORIGINS: str = "*"

    LIST_CACHE_TTL_SECONDS: int = 60
    ENTITY_CACHE_TTL_SECONDS: int = 60
    CACHE_SOCKET_TIMEOUT_SECONDS: float = 0.4
    CACHE_MEMORY_MAX_ENTRIES: int = 10000

    # per client ip, fixed window
    REGISTER_RATE_LIMIT: int = 3
    LOGIN_RATE_LIMIT: int = 2
    REFRESH_RATE_LIMIT: int = 2
    AUTH_RATE_LIMIT_WINDOW_SECONDS: int = 1
    USERS_RATE_LIMIT: int = 10
    USERS_RATE_LIMIT_WINDOW_SECONDS: int = 60

    ADMIN_BOOTSTRAP_ENABLED: bool = True
    ADMIN_BOOTSTRAP_USERNAME: str = "admin"
    ADMIN_BOOTSTRAP_EMAIL: str = "admin@example.com"
    ADMIN_BOOTSTRAP_PASSWORD: str = "admin123"

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.strip().lower() == "production"

settings = Settings()

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Database
    DATABASE_URL: str = "sqlite:///./shortlinks.db"
    STORE_TIMEOUT_SECONDS: float = 5.0

    # Short codes
    SHORT_CODE_STRATEGY: str = "hash"  # "hash" or "counter"
    HASH_CODE_LENGTH: int = 8
    COUNTER_SPAN: int = 100  # sequence slots per one-second bucket
    MAX_RETRIES: int = 3

    # Lookup cache
    CACHE_BACKEND: str = "memory"  # "memory", "redis" or "none"
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_MAX_TTL_SECONDS: int = 60 * 60 * 24  # 24 hours
    CACHE_MAX_ENTRIES: int = 10000
    CACHE_SOCKET_TIMEOUT_SECONDS: float = 0.5

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_prefix = "SHORTLINK_"


settings = Settings()

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App
    ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./shift_optimizer.db"

    # Optimizer defaults
    OPTIMIZER_APPLY_LOCAL_SEARCH: bool = True
    OPTIMIZER_MAX_LOCAL_SEARCH_ITERATIONS: int = 100
    OPTIMIZER_TIMEOUT_MS: int = 30000
    OPTIMIZER_MAX_CONSECUTIVE_DAYS: int = 6
    OPTIMIZER_MIN_REST_HOURS: int = 11
    OPTIMIZER_TAG_MATCH: str = "all"  # "all" or "any"

    # Notes written on auto-created shifts
    AUTO_ASSIGN_NOTE: str = "AI自動割り当て"
    PROGRESSIVE_ASSIGN_NOTE: str = "AI自動配置"

    # Preview warning thresholds
    LOW_FULFILLMENT_WARNING_RATE: int = 70
    HIGH_STDDEV_WARNING_DAYS: float = 3.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )


settings = Settings()

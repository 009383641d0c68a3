from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///makerchecker.db"
    database_echo: bool = False

    # Engine configuration file (allow-lists, expiration, uniqueness)
    config_path: str = "/etc/makerchecker/config.yaml"

    # Logging
    log_level: str = "INFO"
    log_dir: str = "/var/log/makerchecker"
    file_logging: bool = False

    model_config = SettingsConfigDict(
        env_prefix="MAKERCHECKER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"  # Allow extra env vars without raising validation errors
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()

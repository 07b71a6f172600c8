from pydantic_settings import BaseSettings
from functools import lru_cache

class Settings(BaseSettings):
    # Database settings
    database_url: str = "sqlite:///./envelope_ledger.db"
    sql_echo: bool = False
    reset_database_on_startup: bool = False  # drops every table on startup, dev only

    # Logging
    log_level: str = "INFO"

    # Ledger rules
    description_max_length: int = 500
    default_currency: str = "USD"

    class Config:
        env_file = ".env"
        env_prefix = "LEDGER_"

@lru_cache()
def get_settings():
    return Settings()

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
import os


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE", ".env"), env_prefix="CREW_ROSTER_", extra="ignore"
    )

    app_name: str = Field(default="crew_roster")
    app_env: str = Field(default="dev")
    log_level: str = Field(default="INFO")
    version: str = Field(default="0.1.0")

    # Remote roster store (PostgREST endpoint of a Supabase project)
    supabase_url: str = Field(default="http://localhost:54321")
    supabase_anon_key: str = Field(default="")
    access_token: str | None = Field(default=None)
    roster_table: str = Field(default="users")

    # Engine tuning
    page_size: int = Field(default=20, ge=1)
    search_debounce_seconds: float = Field(default=0.3, ge=0)
    request_timeout: float = Field(default=15.0, gt=0)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="HOTPATH_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    log_dir: str = "logs"
    log_level: str = "INFO"
    log_to_file: bool = True
    default_period_ns: int = Field(10_000_000, gt=0)   # 100Hz, Go CPU profiler default
    max_decompressed_mb: int = Field(512, gt=0)
    max_stack_depth: int = Field(512, gt=0)
    top_functions_limit: int = Field(0, ge=0)          # 0 = unlimited

@lru_cache
def get_settings() -> Settings:
    return Settings()  # env vars automatically picked up

# memokit/core/config.py
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings

# ----- Public types -----
SchedulerName = Literal["auto", "asyncio", "thread"]

# ----- Library settings (env-driven) -----
class Settings(BaseSettings):
    log_level: str = "INFO"
    scheduler: SchedulerName = "auto"

    class Config:
        env_prefix = "MEMOKIT_"
        env_file = ".env"
        case_sensitive = False

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

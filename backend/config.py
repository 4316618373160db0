# backend/config.py
"""Application configuration using Pydantic."""
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    # No database_url means the remote store is not configured
    database_url: Optional[str] = None
    database_name: str = 'institute'
    local_store_dir: str = '.localstore'

    app_version: str = '1.0.0'
    log_level: str = 'INFO'
    allowed_origins: List[str] = ['*']
    currency_symbol: str = '₨'
    realtime_enabled: bool = True

    model_config = {
        'env_file': '.env',
        'extra': 'ignore'
    }


settings = Settings()

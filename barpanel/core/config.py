"""
Configuration settings for the application
"""

import os
from typing import List, Optional
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """Application settings"""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./bar_admin.db")
    USE_FIREBASE: bool = os.getenv("USE_FIREBASE", "false").lower() in ("1", "true", "yes")
    FIREBASE_CREDENTIALS_JSON: Optional[str] = os.getenv("FIREBASE_CREDENTIALS_JSON")
    FIREBASE_CREDENTIALS_FILE: Optional[str] = os.getenv("FIREBASE_CREDENTIALS_FILE")
    FIREBASE_CREDENTIALS_B64: Optional[str] = os.getenv("FIREBASE_CREDENTIALS_B64")

    # Application
    APP_TITLE: str = os.getenv("APP_TITLE", "if you know — админка бара")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Grids
    PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100
    DISPLAY_TIMEZONE: str = os.getenv("DISPLAY_TIMEZONE", "Europe/Moscow")
    BOOKING_TIMEZONE: str = os.getenv("BOOKING_TIMEZONE", "UTC")
    NOTIFICATION_AUTO_HIDE_MS: int = 3000

    # Change feed webhook (empty disables the secret check)
    WEBHOOK_SECRET: Optional[str] = os.getenv("WEBHOOK_SECRET")

    # CORS
    ALLOW_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:8000",
    ]

    class Config:
        env_file = ".env"

settings = Settings()

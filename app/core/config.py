"""
Configuration settings for the application
"""

import os
from typing import List
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """Application settings"""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./wedding_invites.db")
    USE_FIREBASE: bool = os.getenv("USE_FIREBASE", "false").lower() in ("1", "true", "yes")
    FIREBASE_CREDENTIALS_JSON: str | None = os.getenv("FIREBASE_CREDENTIALS_JSON")
    FIREBASE_CREDENTIALS_FILE: str | None = os.getenv("FIREBASE_CREDENTIALS_FILE")
    FIREBASE_CREDENTIALS_B64: str | None = os.getenv("FIREBASE_CREDENTIALS_B64")

    # Security
    ADMIN_TOKEN: str = os.getenv("ADMIN_TOKEN", "admin_token_123")

    # Application
    BASE_URL: str = os.getenv("BASE_URL", "http://localhost:8000")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # CORS
    ALLOW_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:8000",
    ]

    # Seating plan defaults
    DEFAULT_PLAN_SLUG: str = "main-hall"
    DEFAULT_PLAN_NAME: str = "Main hall"
    DEFAULT_PLAN_WIDTH: float = 1200
    DEFAULT_PLAN_HEIGHT: float = 800
    MIN_PLAN_DIMENSION: float = 200

    # Table limits
    DEFAULT_TABLE_CAPACITY: int = 8
    MIN_TABLE_CAPACITY: int = 1
    MAX_TABLE_CAPACITY: int = 30

    # File limits
    MAX_UPLOAD_SIZE: int = 5 * 1024 * 1024  # 5MB

    # Rate limiting (RSVP submissions)
    RATE_LIMIT_PER_MINUTE: int = 30

    class Config:
        env_file = ".env"

settings = Settings()

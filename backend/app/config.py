"""
Application configuration management using Pydantic Settings.
"""
from pydantic_settings import BaseSettings
from dotenv import load_dotenv
import os

load_dotenv()

MIB = 1024 * 1024


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Task Desk"
    APP_ENV: str = "development"
    DEBUG: bool = True
    PORT: int = 8000
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./taskdesk.db")

    # Frontend
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000")

    # Security (bulk unpost bearer tokens)
    SECRET_KEY: str = os.getenv("SECRET_KEY", "change-me")
    JWT_ALGORITHM: str = "HS256"

    # File Uploads
    # Filesystem attachments live under PUBLIC_DIR/uploads and are served at /uploads
    PUBLIC_DIR: str = os.getenv("PUBLIC_DIR", "public")
    MAX_UPLOAD_BYTES: int = 10 * MIB
    DEVELOPER_MAX_UPLOAD_BYTES: int = 5 * MIB

    # Attachment archives
    ZIP_MAX_TOTAL_BYTES: int = 20 * MIB
    ZIP_SOFT_CAP_BYTES: int = 15 * MIB
    ZIP_TIMEOUT_SECONDS: float = 8.0
    BULK_ZIP_MAX_TOTAL_BYTES: int = 100 * MIB
    BULK_ZIP_TIMEOUT_SECONDS: float = 30.0

    # Server-sent events
    COMPANY_STREAM_INTERVAL_SECONDS: float = 5.0
    STREAM_HEARTBEAT_SECONDS: float = 15.0

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()

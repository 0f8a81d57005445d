"""
Application settings
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./data/snapreceipts.db"

    # Auth (tokens are issued by the external auth provider)
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = ""

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Object storage
    STORAGE_DIR: str = "./data/storage"
    STORAGE_BUCKET: str = "receipts"
    PUBLIC_BASE_URL: str = "https://localhost:8000"
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # AI vision gateway (OpenAI-compatible chat completions)
    LLM_API_URL: str = "https://ai.gateway.lovable.dev/v1/chat/completions"
    LLM_API_KEY: str = ""
    LLM_MODEL: str = "google/gemini-2.5-flash"

    # Google OAuth / APIs
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_TOKEN_URL: str = "https://oauth2.googleapis.com/token"
    DEFAULT_DRIVE_FOLDER: str = "SnapDaddy Receipts"
    SPREADSHEET_TITLE: str = "SnapDaddy Receipts"

    # Phone upload sessions
    UPLOAD_SESSION_TTL_MINUTES: int = 5

    HTTP_TIMEOUT: float = 30.0

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()

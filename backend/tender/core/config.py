# tender/core/config.py
"""
Application configuration using Pydantic Settings
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
import json
from pydantic import field_validator


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables
    """

    # Application
    APP_NAME: str = "Tender"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str

    # Session tokens
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 10080  # 7 days
    SESSION_COOKIE_NAME: str = "tender_session"
    SESSION_COOKIE_SECURE: bool = False

    # AWS Configuration (blank keys -> default boto3 credential chain)
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION: str = "us-east-1"

    # Bedrock (AI capability)
    BEDROCK_MODEL_ID: str = "anthropic.claude-3-haiku-20240307-v1:0"
    BEDROCK_MAX_TOKENS: int = 4096
    BEDROCK_TEMPERATURE: float = 0.2
    BEDROCK_CONNECT_TIMEOUT_SECONDS: int = 10
    BEDROCK_READ_TIMEOUT_SECONDS: int = 120
    BEDROCK_MAX_RETRIES: int = 1
    BEDROCK_RETRY_BACKOFF_SECONDS: float = 1.0
    # Converse API accepts at most 5 document blocks per request
    BEDROCK_MAX_NATIVE_DOCUMENTS: int = 5

    @field_validator("BEDROCK_MODEL_ID", mode="before")
    @classmethod
    def strip_bedrock_model_id(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip()
        return v

    # Document intake
    PDF_PROCESSING_MODE: str = "native"  # native | text
    MIN_EXTRACTED_CHARS: int = 50
    DEFAULT_CONFIDENCE: float = 0.85
    MAX_DOCUMENT_CHARS: int = 100_000
    EXTRACTION_CONCURRENCY: int = 4
    MAX_UPLOAD_SIZE: int = 26_214_400  # 25MB in bytes

    # Blob storage
    STORAGE_BACKEND: str = "local"  # local | s3
    LOCAL_STORAGE_DIR: str = "./.private/documents"
    S3_BUCKET_NAME: str = "tender-case-documents"

    # CORS
    CORS_ORIGINS: str = '["http://localhost:5173"]'

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from string to list"""
        try:
            parsed = json.loads(self.CORS_ORIGINS)
        except json.JSONDecodeError:
            return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]
        return parsed if isinstance(parsed, list) else [str(parsed)]

    @property
    def pdf_native_enabled(self) -> bool:
        return self.PDF_PROCESSING_MODE.strip().lower() != "text"


# Create settings instance
settings = Settings()

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import model_validator
from typing import Optional


class Settings(BaseSettings):
    """
    Main configuration for Cloudshift.
    Uses Pydantic-Settings for environment variable parsing from .env.
    """
    APP_NAME: str = "Cloudshift"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # local, development, staging, production
    TESTING: bool = False

    @model_validator(mode='after')
    def validate_runtime_config(self) -> 'Settings':
        """Fail fast on settings that would only break at the first upload."""
        if self.TESTING:
            return self

        if self.is_production and not self.DATABASE_URL:
            raise ValueError("DATABASE_URL is required in production.")

        if self.OCR_TEXT_THRESHOLD < 0:
            raise ValueError("OCR_TEXT_THRESHOLD must be zero or positive.")

        return self

    # Database
    DATABASE_URL: Optional[str] = None
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    # Amazon Textract (structured invoice extraction)
    TEXTRACT_ACCESS_KEY_ID: Optional[str] = None
    TEXTRACT_SECRET_ACCESS_KEY: Optional[str] = None
    TEXTRACT_REGION: Optional[str] = None
    TEXTRACT_S3_BUCKET: Optional[str] = None

    # Gemini (AI invoice extraction)
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_TIMEOUT_SECONDS: int = 120

    # Billing file collector (S3)
    FINOPS_ACCESS_KEY_ID: Optional[str] = None
    FINOPS_SECRET_ACCESS_KEY: Optional[str] = None
    FINOPS_S3_BUCKET: Optional[str] = None
    FINOPS_S3_REGION: str = "us-east-1"
    FINOPS_S3_PREFIX: str = ""

    # OCI price list
    OCI_PRICE_API_URL: str = "https://apexapps.oracle.com/pls/apex/cetools/api/v1/products/"
    OCI_PRICE_TIMEOUT_SECONDS: float = 15.0

    # Ingestion limits
    MAX_UPLOAD_BYTES: int = 50 * 1024 * 1024
    OCR_TEXT_THRESHOLD: int = 50
    OCR_DPI: int = 150
    OCR_LANGUAGE: str = "eng"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def textract_configured(self) -> bool:
        return bool(
            self.TEXTRACT_ACCESS_KEY_ID
            and self.TEXTRACT_SECRET_ACCESS_KEY
            and self.TEXTRACT_REGION
        )

    @property
    def gemini_configured(self) -> bool:
        return bool(self.GEMINI_API_KEY)

    @property
    def collector_configured(self) -> bool:
        return bool(
            self.FINOPS_ACCESS_KEY_ID
            and self.FINOPS_SECRET_ACCESS_KEY
            and self.FINOPS_S3_BUCKET
        )


@lru_cache
def get_settings() -> Settings:
    """Returns a singleton instance of the application settings."""
    return Settings()

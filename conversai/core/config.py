from pydantic_settings import BaseSettings
from typing import Optional
from functools import lru_cache

class Settings(BaseSettings):
    # MongoDB Settings
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "chatdb"

    # CORS Settings
    CORS_ORIGINS: str = "*"

    # Logging
    LOG_LEVEL: str = "INFO"

    # LLM Provider Settings (Google Gemini REST API)
    GOOGLE_GENERATIVE_AI_API_KEY: Optional[str] = None
    LLM_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    LLM_MODEL: str = "gemini-2.0-flash"
    LLM_MAX_OUTPUT_TOKENS: int = 4096
    LLM_TEMPERATURE: Optional[float] = None  # None keeps the provider default
    LLM_TIMEOUT_SECONDS: float = 30.0  # Total budget for one streamed reply

    # Context window
    MAX_CONTEXT_TOKENS: int = 128000

    # Memory Service Settings (mem0 platform API)
    MEM0_API_KEY: Optional[str] = None
    MEM0_BASE_URL: str = "https://api.mem0.ai"
    MEM0_TIMEOUT_SECONDS: float = 10.0

    # Object Storage Settings (S3 or S3-compatible)
    S3_BUCKET_NAME: Optional[str] = None
    S3_REGION: str = "us-east-1"
    S3_ACCESS_KEY_ID: Optional[str] = None
    S3_SECRET_ACCESS_KEY: Optional[str] = None
    S3_ENDPOINT_URL: Optional[str] = None  # For MinIO/LocalStack
    S3_PUBLIC_BASE_URL: Optional[str] = None  # CDN or custom domain in front of the bucket

    @property
    def CORS_ORIGINS_LIST(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def MEMORY_ENABLED(self) -> bool:
        """Memory sync only runs when the service is configured"""
        return bool(self.MEM0_API_KEY)

    class Config:
        env_file = ".env"
        case_sensitive = True

@lru_cache()
def get_settings():
    return Settings()

settings = get_settings()

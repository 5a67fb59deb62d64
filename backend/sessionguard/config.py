"""Application configuration using Pydantic settings."""
from pydantic_settings import BaseSettings
from typing import List, Optional

from sessionguard.utils.url import resolve_bucket_name


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    environment: str = "development"

    # CORS
    allowed_origins: str = "http://localhost:3000,http://localhost:3001"

    # Redis (for ARQ worker)
    redis_url: str = "redis://127.0.0.1:6379"

    # AWS (S3 recordings bucket + Rekognition)
    aws_region: str
    aws_access_key_id: str
    aws_secret_access_key: str
    recordings_s3_bucket: str  # Plain bucket name or arn:aws:s3:::name

    # Speech-to-text (Hugging Face inference)
    huggingface_access_token: str
    transcription_model: str = "openai/whisper-large-v3"
    transcription_base_url: str = "https://api-inference.huggingface.co/models"
    transcription_timeout_seconds: float = 600.0

    # LLM judge (Gemini)
    gemini_api_key: str
    gemini_model: str = "gemini-1.5-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta/models"
    gemini_timeout_seconds: float = 120.0

    # Image moderation
    moderation_min_confidence: float = 60.0

    # Media transcoder binaries
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Room service (consumed by the surrounding web layer)
    livekit_url: Optional[str] = None
    livekit_api_key: Optional[str] = None
    livekit_api_secret: Optional[str] = None

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def recordings_bucket(self) -> str:
        """Bucket name with any ARN prefix stripped."""
        return resolve_bucket_name(self.recordings_s3_bucket)

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()

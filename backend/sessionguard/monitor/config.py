"""Realtime monitor configuration using Pydantic settings."""
from pydantic_settings import BaseSettings


class MonitorSettings(BaseSettings):
    """Monitor settings loaded from MONITOR_* environment variables."""

    environment: str = "development"

    # Server the monitor reports to
    api_base_url: str = "http://localhost:8000"
    http_timeout_seconds: float = 10.0

    # Tick loop
    interval_ms: int = 2000

    # Models
    face_model_path: str = "face_landmarker.task"
    voice_model_name: str = "MIT/ast-finetuned-audioset-10-10-0.4593"

    # Capture
    camera_index: int = 0
    jpeg_quality: int = 80

    class Config:
        env_prefix = "MONITOR_"
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


monitor_settings = MonitorSettings()

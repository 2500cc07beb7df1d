"""
Configuration settings for the Fashion Fusion API
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Fashion Fusion API"
    version: str = "1.0.0"
    environment: str = "development"
    debug: bool = True

    # CORS
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    ]

    # Google AI Studio (Gemini image models)
    google_ai_api_key: str = ""
    google_ai_image_model: str = "gemini-2.5-flash-image-preview"
    google_ai_temperature: float = 0.4
    google_ai_timeout_seconds: int = 90
    google_ai_max_retries: int = 3

    # Uploads
    max_upload_bytes: int = 8 * 1024 * 1024  # 8MB per image
    max_payload_bytes: int = int(3.5 * 1024 * 1024)  # combined inline payload
    allowed_image_prefix: str = "image/"
    max_long_edge: int = 2048
    payload_auto_optimize: bool = True  # re-encode person/item when over max_payload_bytes

    # Grid geometry
    grid_columns: int = 3
    grid_rows: int = 3
    max_grid_side: int = 3  # columns/rows accepted by the grid endpoints
    grid_size_tolerance_px: int = 2
    grid_max_attempts: int = 2

    # Color drift policy (non-garment pixels)
    drift_max_delta_e: float = 2.0
    drift_max_channel_diff: float = 0.01
    drift_mask_white_threshold: int = 220
    drift_sample_step: int = 4

    # Sessions
    session_ttl_seconds: int = 3600

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Allow extra fields from .env


# Global settings instance
settings = Settings()

"""
Configuration management for the S3 storage engine.
Loads tuning knobs for streaming uploads from environment variables.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    # Application
    LOG_LEVEL: str = "INFO"

    # Streaming Upload Configuration
    MAX_BUFFERED_CHUNKS: int = 10  # Chunks buffered per transform branch before the source waits
    READ_CHUNK_SIZE: int = 256 * 1024  # Read size when adapting framework uploads

    # Multipart Configuration
    MULTIPART_CHUNKSIZE: int = 10 * 1024 * 1024  # Bytes per part (clamped to the S3 minimum)
    UPLOAD_MAX_WORKERS: int = 8  # Threads available for blocking boto3 calls

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()

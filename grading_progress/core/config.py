# grading_progress/core/config.py
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "Grading Progress Service"
    API_V1_PREFIX: str = "/api/v1"

    # Upstream grading backend (base URL includes the /api prefix)
    GRADING_API_URL: str = "http://localhost:8000/api"
    GRADING_API_TOKEN: str | None = None
    REQUEST_TIMEOUT_SECONDS: float = 60.0

    # Submission status polling
    POLL_MAX_ATTEMPTS: int = 60
    POLL_INTERVAL_MS: int = 2000
    POLL_MAX_CONCURRENCY: int = 8

    # Batch uploads
    UPLOAD_MAX_SIZE_MB: int = 10
    UPLOAD_ALLOWED_EXTENSIONS: list[str] = [".jpg", ".jpeg", ".png", ".pdf"]
    UPLOAD_MAX_CONCURRENCY: int = 1  # 1 = sequential, in file order
    UPLOAD_CHUNK_SIZE: int = 64 * 1024

    # Score analytics
    PASS_THRESHOLD: float = 60.0
    DISTRIBUTION_SAMPLE_SIZE: int = 5

    # Frontend origins allowed by CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    LOG_LEVEL: str = "INFO"
    # Unexpected errors are re-raised instead of being turned into a generic message
    DEBUG: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()

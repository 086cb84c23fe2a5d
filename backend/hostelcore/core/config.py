"""Application configuration"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Project
    PROJECT_NAME: str = "Hostel Management Core"
    VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Security
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_MINUTES: int = 1440  # 24 hours

    # Database
    DATABASE_URL: str

    # Object storage (mess photos, complaint attachments)
    S3_ENDPOINT: Optional[str] = None
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_REGION: str = "us-east-1"
    S3_BUCKET_NAME: str = "hostel-uploads"
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024  # 10MB

    # Leave workflow
    # WHY: Some hostels require a parent sign-off before the warden decides,
    # others let staff approve alone. Valid values: parent_then_staff, staff_only
    LEAVE_APPROVAL_FLOW: str = "parent_then_staff"

    # Room assignment
    # WHY: Occupancy increments are optimistic; a lost race is retried this
    # many times before the assignment fails with RoomFull.
    ROOM_ASSIGNMENT_RETRIES: int = 1

    @property
    def async_database_url(self) -> str:
        """Get async database URL"""
        if self.DATABASE_URL.startswith("sqlite://"):
            return self.DATABASE_URL.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")

    @property
    def is_sqlite(self) -> bool:
        return self.async_database_url.startswith("sqlite")


settings = Settings()

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")
    auto_create_tables: bool = Field(False, alias="AUTO_CREATE_TABLES")
    # Upper bound for one request's store work; exceeded => full rollback.
    db_operation_timeout_seconds: float = Field(30.0, alias="DB_OPERATION_TIMEOUT_SECONDS")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    storage_dir: str = Field("uploads", alias="STORAGE_DIR")
    temp_retention_days: int = Field(7, alias="TEMP_RETENTION_DAYS")
    max_upload_bytes: int = Field(10 * 1024 * 1024, alias="MAX_UPLOAD_BYTES")

    scheduler_enabled: bool = Field(True, alias="SCHEDULER_ENABLED")
    scheduler_tick_seconds: int = Field(60, alias="SCHEDULER_TICK_SECONDS")
    contract_renewal_interval_hours: int = Field(24, alias="CONTRACT_RENEWAL_INTERVAL_HOURS")
    temp_cleanup_interval_hours: int = Field(24, alias="TEMP_CLEANUP_INTERVAL_HOURS")

    institution_name: str = Field("Secretaria Online", alias="INSTITUTION_NAME")

    resend_api_key: Optional[str] = Field(None, alias="RESEND_API_KEY")
    email_from: str = Field("Secretaria Online <noreply@secretaria.local>", alias="EMAIL_FROM")
    email_timeout_seconds: float = Field(10.0, alias="EMAIL_TIMEOUT_SECONDS")

    admin_email: Optional[str] = Field(None, alias="ADMIN_EMAIL")
    admin_password: Optional[str] = Field(None, alias="ADMIN_PASSWORD")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()

from typing import List, Optional
from pydantic_settings import BaseSettings
from urllib.parse import quote_plus

class Settings(BaseSettings):
    ENV: str = "local"
    LOG_LEVEL: str = "INFO"

    # full URL wins over the postgres_* parts (sqlite for local/tests)
    DATABASE_URL: Optional[str] = None
    postgres_user: str = "booknest"
    postgres_password: str = ""
    postgres_db: str = "booknest"
    postgres_host: str = "localhost"
    postgres_port: str = "5432"

    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7

    RAZORPAY_KEY_ID: Optional[str] = None
    RAZORPAY_KEY_SECRET: Optional[str] = None
    RAZORPAY_CURRENCY: str = "INR"
    RAZORPAY_TIMEOUT_SECONDS: float = 10.0

    BREVO_API_KEY: Optional[str] = None
    MAIL_FROM: str = "no-reply@booknest.app"
    STORE_NAME: str = "BookNest"

    # pdf_file paths on Book are relative to this directory
    UPLOAD_ROOT: str = "uploads"

    PENDING_PURCHASE_EXPIRY_HOURS: int = 24

    CORS_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]

    @property
    def database_url(self):
        if self.DATABASE_URL:
            return self.DATABASE_URL
        encoded_password = quote_plus(self.postgres_password)
        return (
            f"postgresql+psycopg2://{self.postgres_user}:"
            f"{encoded_password}@{self.postgres_host}:"
            f"{self.postgres_port}/{self.postgres_db}"
        )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "allow"

settings = Settings()

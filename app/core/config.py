from typing import Literal

from dotenv import load_dotenv
from pydantic_settings import BaseSettings


class Config(BaseSettings):
    db_url: str
    env: Literal["prod", "dev"] = "prod"
    host: str = "127.0.0.1"
    port: int = 3011

    # JWT settings, tokens are issued by the auth service
    # IMPORTANT: set in environment for production
    jwt_secret: str | None = None
    jwt_algorithm: str = "HS256"

    # Upstream gacha log API
    request_delay_seconds: float = 1.0
    request_timeout_seconds: float = 30.0
    page_size: int = 20
    max_pages_per_banner: int = 100
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 2.0
    retry_backoff_multiplier: float = 2.0

    # Import engine
    duplicate_buffer_seconds: float = 5.0
    progress_retention_seconds: float = 60.0
    max_upload_bytes: int = 10 * 1024 * 1024  # 10 MB

    @property
    def is_dev(self) -> bool:
        return self.env == "dev"


load_dotenv()
settings = Config()  # pyright: ignore[reportCallIssue]

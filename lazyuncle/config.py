"""Application configuration via environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Lazy Uncle application settings loaded from environment variables."""

    # Required
    secret_key: str = "change-me-to-a-random-string"

    # Public URL for share pages and unsubscribe links
    base_url: str = "http://localhost:3000"

    # Data paths
    data_dir: Path = Path("./data")
    db_path: Path = Path("./data/lazyuncle.db")

    # "development" logs emails to the console when no SMTP host is set
    environment: str = "development"

    # Authentication
    token_expiry_days: int = 30

    # CORS (comma-separated extra origins, in addition to localhost defaults)
    cors_origins: str = ""

    # SMTP transport
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_secure: bool = False
    smtp_from: str = "noreply@lazyuncle.com"

    # Transactional email HTTP API (used when no SMTP host is set)
    email_api_url: str = ""
    email_api_key: str = ""

    # Background maintenance
    enable_background_jobs: bool = True

    model_config = {
        "env_prefix": "LAZYUNCLE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


# Singleton instance
settings = Settings()

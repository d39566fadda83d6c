from pydantic import ConfigDict, field_validator
from pydantic_settings import BaseSettings

MIN_SECRET_BYTES = 32


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Database (replay records)
    database_url: str = "sqlite:///./powgate.db"

    # Proof of Work
    pow_secret_key: str = "dev-only-insecure-pow-secret-change-me-0123456789"
    pow_challenge_ttl_seconds: int = 300  # 5 minutes
    pow_difficulty_factor: float = 100_000.0  # well under a second on a modern CPU
    pow_min_difficulty_factor: float = 1.0

    # Cleanup
    cleanup_interval_minutes: int = 10

    # Rate Limiting
    rate_limit_challenges: str = "10/minute"
    rate_limit_verifications: str = "30/minute"
    # Honor X-Forwarded-For only when a reverse proxy sets it
    rate_limit_trust_forwarded_for: bool = True

    # CORS
    cors_origins: list[str] | str = ["http://localhost:5173", "http://127.0.0.1:5173"]

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"  # "console" or "json"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from comma-separated string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("pow_secret_key")
    @classmethod
    def check_secret_length(cls, v):
        if len(v.encode()) < MIN_SECRET_BYTES:
            raise ValueError(f"pow_secret_key must be at least {MIN_SECRET_BYTES} bytes")
        return v

    @field_validator("pow_difficulty_factor", "pow_min_difficulty_factor")
    @classmethod
    def check_difficulty(cls, v):
        if v < 1.0:
            raise ValueError("difficulty factor must be >= 1.0")
        return v

    @field_validator("log_format")
    @classmethod
    def check_log_format(cls, v):
        if v not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return v


settings = Settings()

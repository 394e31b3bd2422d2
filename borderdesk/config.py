from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    database_url: str = "sqlite:///./borderdesk.db"

    jwt_secret_key: str = "change-this-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60

    # AI verification bands: >= ai_confidence_threshold is auto-verified,
    # >= manual_review_threshold needs a staff decision, anything lower is flagged.
    ai_confidence_threshold: float = 0.85
    manual_review_threshold: float = 0.70

    # Maximum number of pending applications before the priority queue kicks in
    queue_priority_threshold: int = 50

    override_min_justification_length: int = 20

    # CORS configuration - comma-separated list of allowed origins
    cors_allowed_origins: Optional[str] = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    def get_cors_origins(self) -> list[str]:
        """Get list of CORS allowed origins, combining defaults with env var."""
        default_origins = [
            "http://localhost:5173",
            "http://localhost:8080",
            "http://localhost:3000",
        ]

        all_origins = list(default_origins)

        if self.cors_allowed_origins:
            for origin in self.cors_allowed_origins.split(","):
                cleaned = origin.strip().rstrip("/")
                if cleaned and cleaned not in all_origins:
                    all_origins.append(cleaned)

        return all_origins


@lru_cache()
def get_settings() -> Settings:
    return Settings()

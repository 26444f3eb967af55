"""
backend/pickcache/config.py

Purpose:
    Central settings loading for the pick service. Settings are validated once
    while the application is being built; a misconfigured process never starts
    serving requests.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path
from typing import Literal

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

from pickcache.errors import ConfigurationError

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    OPENAI_API_KEY: str = Field(min_length=1)
    MONGO_URI: str = Field(min_length=1)
    MONGO_DB: str = "pickcache"
    BACKEND_CORS_ORIGINS: str = "*"

    # Generation provider (OpenAI-compatible REST API)
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    LLM_MODEL: str = "gpt-4o"
    LLM_TEMPERATURE: float = 0.2
    LLM_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_DIMENSIONS: int = Field(default=1536, gt=0)
    EMBEDDING_TIMEOUT_SECONDS: float = Field(default=15.0, gt=0)

    # Staleness policy
    PICK_MAX_AGE_HOURS: float = Field(default=4.0, gt=0)
    PICK_ODDS_DRIFT_THRESHOLD: int = Field(default=20, ge=0)

    # Minimum reasoning length accepted from the model
    REASONING_MIN_LENGTH: int = Field(default=50, ge=1)

    # "insert" = first committer wins, "upsert" = last write wins
    COMMIT_STRATEGY: Literal["insert", "upsert"] = "insert"

    # Scheduled refresh of upcoming games
    PICK_REFRESH_ENABLED: bool = False
    PICK_REFRESH_INTERVAL_MINUTES: int = Field(default=30, gt=0)
    PICK_REFRESH_LOOKAHEAD_HOURS: int = Field(default=48, gt=0)
    PICK_REFRESH_MAX_RETRIES: int = Field(default=3, ge=1)
    PICK_REFRESH_RETRY_BASE_SECONDS: float = Field(default=1.0, ge=0)

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.BACKEND_CORS_ORIGINS.split(",") if o.strip()]


def load_settings(**overrides) -> Settings:
    """Build Settings, converting validation failures into ConfigurationError."""
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        fields = sorted({".".join(str(p) for p in err.get("loc", ())) for err in exc.errors()})
        raise ConfigurationError(
            "Service is misconfigured.",
            details={"fields": fields, "errors": exc.errors(include_url=False, include_input=False)},
        ) from exc

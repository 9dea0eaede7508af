"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
Scoring services take these values as constructor arguments; only the
wiring layer (routers, main) reads the global settings instance.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Database Configuration
    # SQLite by default: one installation, one user, one model.
    DATABASE_URL: str = Field(default="sqlite:///./readiness.db")
    DB_ECHO: bool = Field(default=False)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # Readiness blending
    # Number of usable training days over which scoring moves from rules to the model.
    READINESS_TRANSITION_DAYS: int = Field(default=30, ge=1)

    # Personalized model
    READINESS_RIDGE_LAMBDA: float = Field(default=0.1, ge=0.0)
    READINESS_MIN_TRAINING_EXAMPLES: int = Field(default=3, ge=1)
    # Below this many trained examples, sleep is normalized with the opinionated curve.
    READINESS_LINEAR_NORMALIZATION_THRESHOLD: int = Field(default=30, ge=0)

    # Next-day prediction
    PREDICTION_DAMPING_FACTOR: float = Field(default=0.7, gt=0.0, le=1.0)

    # Health data source used when a score request carries no metrics.
    # "sample" generates realistic metrics, "none" returns empty records.
    HEALTH_DATA_SOURCE: str = Field(default="sample")
    SAMPLE_DATA_SEED: Optional[int] = Field(default=None)


# Global settings instance
settings = Settings()

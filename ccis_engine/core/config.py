"""
Engine configuration settings
"""
import os
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings with environment variable support"""

    # App
    APP_NAME: str = "CCIS Progression Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")  # development, staging, production

    # Monitoring
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_DIR: str = os.getenv("LOG_DIR", "logs")
    EVENT_LOG_PATH: str = os.getenv("EVENT_LOG_PATH", "")  # JSON lines of domain events; empty disables

    # Evidence ledger
    EVIDENCE_DECAY_RATE: float = float(os.getenv("EVIDENCE_DECAY_RATE", "0.1"))

    # Gaming risk
    HIGH_RISK_THRESHOLD: float = float(os.getenv("HIGH_RISK_THRESHOLD", "0.7"))
    GAMING_EVALUATION_TIMEOUT_SECONDS: float = float(
        os.getenv("GAMING_EVALUATION_TIMEOUT_SECONDS", "2.0")
    )

    # External estimator (optional)
    EXTERNAL_SCORER_ENABLED: bool = os.getenv("EXTERNAL_SCORER_ENABLED", "false").lower() == "true"
    EXTERNAL_SCORER_URL: str = os.getenv("EXTERNAL_SCORER_URL", "")
    EXTERNAL_SCORER_API_KEY: str = os.getenv("EXTERNAL_SCORER_API_KEY", "")
    EXTERNAL_SCORER_TIMEOUT_SECONDS: float = float(
        os.getenv("EXTERNAL_SCORER_TIMEOUT_SECONDS", "5.0")
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )


settings = Settings()

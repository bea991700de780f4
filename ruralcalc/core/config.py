"""
Centralized engine configuration implementing the 12-Factor App methodology.
Legal ceilings are injectable so that jurisdictional or temporal changes are environment edits.
"""
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Immutable configuration schema backed by environment variables."""

    APP_NAME: str = "RuralCalc"
    VERSION: str = "1.0.0"

    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "standard"  # standard | json

    # Lei de Usura (Decreto 22.626/33) + STJ REsp 1.061.530/RS
    JUDICIAL_REVIEW_RATE_AA: float = 12.0
    # Decreto-Lei 167/67, art. 5
    MORA_CEILING_AA: float = 1.0
    # Percentage of the outstanding balance
    PENALTY_CEILING: float = 2.0
    WARNING_BAND_RATIO: float = 0.9

    # Contract chain thresholds (percent)
    ROLLOVER_FLAT_TOLERANCE_PCT: float = 10.0
    DISPROPORTIONATE_INCREASE_PCT: float = 20.0

    # Overrides the bundled legal table when set
    LEGAL_LIMITS_FILE: Optional[str] = None

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


settings = Settings()

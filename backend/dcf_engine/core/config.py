"""
config.py — Centralized Engine Configuration Loader

Purpose:
- Define a single source of truth for engine and API settings.
- Load and validate environment variables from `.env` or OS environment.

The pure modeling functions never read these settings directly. Callers
(API routers, scripts) turn them into explicit option objects, e.g.
DcfOptions.from_settings(settings), so repeated re-valuation stays free of
ambient state.
"""

from pathlib import Path
from typing import List

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# config.py is at: backend/dcf_engine/core/config.py
# .env should be at: backend/.env
_CONFIG_DIR = Path(__file__).parent
_BACKEND_DIR = _CONFIG_DIR.parent.parent
_ENV_FILE = _BACKEND_DIR / ".env"

if _ENV_FILE.exists():
    _ENV_FILE_PATH = str(_ENV_FILE.resolve())
else:
    # Fallback: pydantic will look in CWD
    _ENV_FILE_PATH = ".env"

TERMINAL_VALUE_METHODS = ("perpetuity", "blended")


class Settings(BaseSettings):
    """
    Engine settings container.

    Valuation:
    - terminal value method and exit multiple band
    - tolerance used for the balance sheet identity check

    Monte Carlo:
    - default / maximum trial counts, batch size, outlier rejection multiple
    """
    LOG_LEVEL: str = Field(
        "INFO",
        description="Root log level (DEBUG, INFO, WARNING, ERROR)",
    )

    # Valuation
    TERMINAL_VALUE_METHOD: str = Field(
        "perpetuity",
        description="'perpetuity' (Gordon growth only) or 'blended' (average with exit multiple)",
    )
    EXIT_MULTIPLE_FLOOR: float = Field(
        6.0,
        description="Lower clamp for the EV/EBITDA exit multiple",
    )
    EXIT_MULTIPLE_CAP: float = Field(
        15.0,
        description="Upper clamp for the EV/EBITDA exit multiple",
    )
    DEFAULT_EXIT_MULTIPLE: float = Field(
        10.0,
        description="Exit multiple used when no market EV/EBITDA is available",
    )
    BALANCE_TOLERANCE: float = Field(
        1e-6,
        description="Relative tolerance for total assets == liabilities + equity",
    )

    # Monte Carlo
    MONTE_CARLO_DEFAULT_TRIALS: int = Field(
        1000,
        description="Trial count used when a request does not specify one",
    )
    MONTE_CARLO_MAX_TRIALS: int = Field(
        50000,
        description="Hard upper bound on trials per request",
    )
    MONTE_CARLO_BATCH_SIZE: int = Field(
        100,
        description="Trials evaluated between cancellation checks / event loop yields",
    )
    MONTE_CARLO_OUTLIER_MULTIPLE: float = Field(
        10.0,
        description="Trials priced beyond this multiple of the base price are rejected",
    )

    # API
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed CORS origins for the HTTP API",
    )

    @field_validator('TERMINAL_VALUE_METHOD', mode='before')
    @classmethod
    def normalize_method(cls, v):
        """Lower-case and check the terminal value method."""
        method = str(v).strip().lower()
        if method not in TERMINAL_VALUE_METHODS:
            raise ValueError(f"TERMINAL_VALUE_METHOD must be one of {TERMINAL_VALUE_METHODS}, got {v!r}")
        return method

    @model_validator(mode='after')
    def check_bounds(self) -> 'Settings':
        """Exit multiple band must be ordered and trial limits positive."""
        if self.EXIT_MULTIPLE_FLOOR <= 0 or self.EXIT_MULTIPLE_FLOOR > self.EXIT_MULTIPLE_CAP:
            raise ValueError("EXIT_MULTIPLE_FLOOR must be positive and <= EXIT_MULTIPLE_CAP")
        if self.MONTE_CARLO_BATCH_SIZE <= 0 or self.MONTE_CARLO_MAX_TRIALS <= 0:
            raise ValueError("Monte Carlo batch size and max trials must be positive")
        return self

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE_PATH,
        env_file_encoding="utf-8",
        extra="ignore",
    )


# Module-level singleton shared by every importer
settings = Settings()

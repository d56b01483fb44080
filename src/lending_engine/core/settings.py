"""Engine settings loaded from the environment.

Values come from process environment variables, optionally seeded from a
.env file. Every field has a protocol default, so an empty environment
yields a working configuration.

Variables:
- LENDING_MAX_PRIMARY_DELAY: primary feed staleness bound (seconds)
- LENDING_MAX_FALLBACK_AGE: fallback feed maximum price age (seconds)
- LENDING_MIN_HEALTH_FACTOR: WAD health factor required after withdraw/borrow
- LENDING_SECONDS_PER_YEAR: divisor turning APR into per-second rates
- LENDING_LOG_DIR: directory for the event journal
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from lending_engine.core.errors import SettingsError
from lending_engine.data.constants import (
    DEFAULT_MAX_FALLBACK_AGE,
    DEFAULT_MAX_PRIMARY_DELAY,
    DEFAULT_MIN_HEALTH_FACTOR,
    SECONDS_PER_YEAR,
    WAD,
)


@dataclass(frozen=True)
class EngineSettings:
    """Tunable engine parameters."""

    max_primary_delay: int = DEFAULT_MAX_PRIMARY_DELAY
    max_fallback_age: int = DEFAULT_MAX_FALLBACK_AGE
    min_health_factor: int = DEFAULT_MIN_HEALTH_FACTOR
    seconds_per_year: int = SECONDS_PER_YEAR
    log_dir: Path = Path("logs")

    def __post_init__(self) -> None:
        if self.max_primary_delay < 0:
            raise SettingsError(
                f"max_primary_delay must be non-negative, got {self.max_primary_delay}"
            )
        if self.max_fallback_age < 0:
            raise SettingsError(
                f"max_fallback_age must be non-negative, got {self.max_fallback_age}"
            )
        # A margin of exactly 1.0 leaves no buffer against rounding
        if self.min_health_factor <= WAD:
            raise SettingsError(
                f"min_health_factor must be strictly above {WAD}, "
                f"got {self.min_health_factor}"
            )
        if self.seconds_per_year <= 0:
            raise SettingsError(
                f"seconds_per_year must be positive, got {self.seconds_per_year}"
            )

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> EngineSettings:
        """Load settings from environment variables.

        Args:
            env_file: Optional .env path; default search applies when None.

        Returns:
            Validated EngineSettings.

        Raises:
            SettingsError: If a variable is not an integer or fails validation.
        """
        if env_file is None:
            load_dotenv()
        else:
            load_dotenv(env_file)

        return cls(
            max_primary_delay=_int_env("LENDING_MAX_PRIMARY_DELAY", DEFAULT_MAX_PRIMARY_DELAY),
            max_fallback_age=_int_env("LENDING_MAX_FALLBACK_AGE", DEFAULT_MAX_FALLBACK_AGE),
            min_health_factor=_int_env("LENDING_MIN_HEALTH_FACTOR", DEFAULT_MIN_HEALTH_FACTOR),
            seconds_per_year=_int_env("LENDING_SECONDS_PER_YEAR", SECONDS_PER_YEAR),
            log_dir=Path(os.getenv("LENDING_LOG_DIR", "logs")),
        )

    def as_dict(self) -> dict[str, Any]:
        """Settings context for logging."""
        return {
            "max_primary_delay": self.max_primary_delay,
            "max_fallback_age": self.max_fallback_age,
            "min_health_factor": str(self.min_health_factor),
            "seconds_per_year": self.seconds_per_year,
            "log_dir": str(self.log_dir),
        }


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise SettingsError(f"{name} must be an integer, got {raw!r}") from None

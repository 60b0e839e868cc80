"""Engine settings.

Settings come from the environment (prefix `SHEETBUILDER_`) or a `.env` file.

Environment Variables:
    SHEETBUILDER_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    SHEETBUILDER_LOG_JSON: Render logs as JSON instead of console output.
    SHEETBUILDER_MAX_ROLLS: Maximum number of dice a single formula may roll.
    SHEETBUILDER_DEFAULT_BAR_VALUE: Fallback for bar values and maximums that don't compute.
    SHEETBUILDER_MODIFIER_DEFAULT: Fallback for modifier formula references that don't compute.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic import field_validator
from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class EngineSettings(BaseSettings):
    """
    Attributes:
        log_level: Minimum level of log events that are emitted.
        log_json: If True, logs are rendered as JSON lines.
        max_rolls: Upper bound on dice rolled while evaluating one formula. Protects
            against formulas like `1000000d6` coming from user-edited templates.
        default_bar_value: Value used for a bar's value or maximum when its formula
            references something that doesn't exist.
        modifier_default: Value substituted for unknown references in modifier formulas.
            Modifiers are evaluated against static item/actor data, so a missing
            reference there will never resolve later.
    """

    model_config = SettingsConfigDict(
        env_prefix="SHEETBUILDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: LogLevel = Field(default="INFO")
    log_json: bool = False
    max_rolls: int = Field(default=1000, gt=0)
    default_bar_value: float = 0
    modifier_default: float = 0

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_level(cls, value: str) -> str:
        return value.upper() if isinstance(value, str) else value


@lru_cache
def get_settings() -> EngineSettings:
    return EngineSettings()

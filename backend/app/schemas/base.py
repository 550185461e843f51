"""
Base schemas shared by SkillSwap API responses.
"""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from ..utils.time_helpers import ensure_utc_optional


class StandardizedModel(BaseModel):
    """Response base: reads ORM attributes and always emits UTC-aware datetimes."""

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True, from_attributes=True)

    @field_validator("*", mode="before")
    @classmethod
    def _utc_datetimes(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return ensure_utc_optional(value)
        return value


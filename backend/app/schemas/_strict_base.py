"""Strict request baseline: unexpected fields are rejected."""

from pydantic import BaseModel, ConfigDict


class StrictRequestModel(BaseModel):
    """Request DTO base that forbids unexpected fields and validates assignment."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

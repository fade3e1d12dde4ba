"""Pydantic request schemas for the resource endpoints."""
from typing import Optional

from pydantic import BaseModel, Field


class RegionRequest(BaseModel):
    """Request body for region-scoped listings."""
    session_id: str
    region: Optional[str] = Field(default=None)   # falls back to resources.default_region


class RegionsRequest(BaseModel):
    session_id: str


class StackDetailsRequest(RegionRequest):
    stack_name: str = Field(..., min_length=1)

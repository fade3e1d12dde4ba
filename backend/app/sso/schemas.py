"""Pydantic request schemas for the SSO endpoints."""
from typing import Optional

from pydantic import BaseModel, Field


class SSOStartRequest(BaseModel):
    """Request body for starting a device authorization flow."""
    portal_url: str = Field(..., min_length=1)
    region: Optional[str] = Field(default=None)   # falls back to sso.default_region


class SessionRequest(BaseModel):
    """Request body carrying only a session id."""
    session_id: str


class RolesRequest(SessionRequest):
    account_id: str


class CredentialsRequest(SessionRequest):
    account_id: str
    role_name: str = Field(..., min_length=1)

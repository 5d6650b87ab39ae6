# src/crm_client/models.py

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict


class TokenPair(BaseModel):
    """
    Response body of the login, register and refresh endpoints.
    The refresh token rotates on every use, so both values are always replaced together.
    """
    access_token: str
    refresh_token: str


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str
    password: str
    full_name: Optional[str] = None


class User(BaseModel):
    """User returned by /api/v1/me. Unknown fields are kept as-is."""
    model_config = ConfigDict(extra="allow")

    id: Optional[Union[str, int]] = None
    email: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None
    organization_id: Optional[str] = None

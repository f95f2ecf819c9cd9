from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from .base import CamelModel


OAuthProvider = Literal["github", "gitlab", "bitbucket"]


class OAuthState(BaseModel):
    provider: OAuthProvider
    return_to: str
    created_at: float = Field(..., description="time.time() when the flow started.")


class OAuthConnection(CamelModel):
    provider: OAuthProvider
    account_id: str
    account_name: str
    avatar_url: Optional[str] = None
    connected_at: str


class OAuthAccessToken(BaseModel):
    provider: OAuthProvider
    account_id: str
    token: str
    updated_at: str


class GitHubRepository(CamelModel):
    id: str
    name: str
    full_name: str
    owner: str
    updated_at: str
    visibility: Literal["public", "private"]

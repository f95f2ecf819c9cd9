from __future__ import annotations

from typing import List

from models import CamelModel, GitHubRepository, OAuthConnection


class OAuthConnectionsResponse(CamelModel):
    data: List[OAuthConnection]


class GitHubReposMeta(CamelModel):
    provider: str = "github"
    account_id: str
    account_name: str


class GitHubReposResponse(CamelModel):
    data: List[GitHubRepository]
    meta: GitHubReposMeta

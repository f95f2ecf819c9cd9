from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import RedirectResponse

from schemas import GitHubReposMeta, GitHubReposResponse, OAuthConnectionsResponse
from services import GitHubOAuthService, OAuthError, clamp_limit


DEFAULT_REPOS_LIMIT = 20


def build_oauth_router(oauth_service: GitHubOAuthService) -> APIRouter:
    router = APIRouter(prefix="/v1/oauth", tags=["oauth"])

    @router.get("/connections", response_model=OAuthConnectionsResponse)
    async def list_connections() -> OAuthConnectionsResponse:
        return OAuthConnectionsResponse(data=oauth_service.list_connections())

    @router.get(
        "/github/repos",
        response_model=GitHubReposResponse,
        summary="Connected repositories visible to a linked GitHub account",
    )
    async def list_github_repos(
        account_id: Optional[str] = Query(default=None, alias="accountId"),
        q: Optional[str] = None,
        limit: Optional[str] = None,
    ) -> GitHubReposResponse:
        try:
            repos, meta = await oauth_service.list_github_repos(
                account_id, q, clamp_limit(limit, DEFAULT_REPOS_LIMIT)
            )
        except OAuthError as exc:
            raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
        return GitHubReposResponse(data=repos, meta=GitHubReposMeta.model_validate(meta))

    @router.get("/github/start")
    async def start_github(
        return_to: Optional[str] = Query(default=None, alias="returnTo"),
    ) -> RedirectResponse:
        return RedirectResponse(oauth_service.start_github(return_to), status_code=302)

    @router.get("/github/callback")
    async def github_callback(
        code: Optional[str] = None,
        state: Optional[str] = None,
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> RedirectResponse:
        next_url = await oauth_service.complete_github(
            code=code,
            state=state,
            error=error,
            error_description=error_description,
        )
        return RedirectResponse(next_url, status_code=302)

    @router.get("/gitlab/start")
    async def start_gitlab() -> RedirectResponse:
        return RedirectResponse(oauth_service.gitlab_signin_url, status_code=302)

    @router.get("/bitbucket/start")
    async def start_bitbucket() -> RedirectResponse:
        return RedirectResponse(oauth_service.bitbucket_signin_url, status_code=302)

    return router

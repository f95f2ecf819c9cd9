from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple
from urllib import error as urllib_error, parse as urllib_parse, request as urllib_request
from uuid import uuid4

from domain import canonical_repo_name
from models import (
    GitHubRepository,
    OAuthAccessToken,
    OAuthConnection,
    OAuthState,
    isoformat_utc,
    utc_now,
)
from settings import Settings

from .command_runner import run_command


logger = logging.getLogger("control-plane.oauth")

STATE_TTL_SECONDS = 10 * 60
GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_API_URL = "https://api.github.com"
GITHUB_SCOPES = "read:user user:email repo"
USER_AGENT = "vserver-control-plane"
REPOS_PER_PAGE = 100
MAX_REPO_PAGES = 10
GITHUB_REMOTE_PATTERNS = (
    re.compile(r"github\.com:([^/\s]+)/([^/\s]+)$", re.IGNORECASE),
    re.compile(r"github\.com/([^/\s]+)/([^/\s]+)$", re.IGNORECASE),
)


class OAuthError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class GitHubAPIError(RuntimeError):
    def __init__(self, status: int, message: str, payload: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.payload = payload


def parse_github_remote(remote_url: str) -> Optional[Tuple[str, str]]:
    """``(owner, repo)`` from an ssh or https GitHub remote URL."""
    trimmed = re.sub(r"\.git$", "", (remote_url or "").strip(), flags=re.IGNORECASE)
    for pattern in GITHUB_REMOTE_PATTERNS:
        match = pattern.search(trimmed)
        if match:
            return match.group(1), match.group(2)
    return None


def append_query(url: str, key: str, value: str) -> str:
    parts = urllib_parse.urlsplit(url)
    query = [(k, v) for k, v in urllib_parse.parse_qsl(parts.query, keep_blank_values=True) if k != key]
    query.append((key, value))
    return urllib_parse.urlunsplit(parts._replace(query=urllib_parse.urlencode(query)))


def build_return_url(
    base_url: str,
    provider: str,
    status: str,
    *,
    account: Optional[str] = None,
    message: Optional[str] = None,
) -> str:
    next_url = append_query(base_url, "oauth", f"{provider}-{status}")
    if account:
        next_url = append_query(next_url, "account", account)
    if message:
        next_url = append_query(next_url, "message", message)
    return next_url


class GitHubOAuthService:
    """GitHub account connection for the repository picker; state lives in memory."""

    def __init__(self, settings: Settings, *, default_project_slug: str = "") -> None:
        self.client_id = settings.github_client_id.strip()
        self.client_secret = settings.github_client_secret.strip()
        self.public_url = settings.resolved_public_url
        self.dashboard_url = settings.dashboard_public_url
        self.gitlab_signin_url = settings.gitlab_signin_url
        self.bitbucket_signin_url = settings.bitbucket_signin_url
        self.connected_repos = Settings.split_list(settings.connected_github_repos)
        self.connected_repo_paths = Settings.split_list(settings.connected_repo_paths)
        self.default_project_slug = default_project_slug
        self._states: Dict[str, OAuthState] = {}
        self._connections: Dict[str, OAuthConnection] = {}
        self._tokens: Dict[str, OAuthAccessToken] = {}

    @property
    def callback_url(self) -> str:
        return urllib_parse.urljoin(self.public_url, "/v1/oauth/github/callback")

    def parse_return_to(self, raw_return_to: Optional[str]) -> str:
        if not raw_return_to:
            return self.dashboard_url
        try:
            parts = urllib_parse.urlsplit(raw_return_to)
        except ValueError:
            return self.dashboard_url
        if parts.scheme not in {"http", "https"} or not parts.netloc:
            return self.dashboard_url
        return raw_return_to

    def _clear_expired_states(self) -> None:
        now = time.time()
        for state, payload in list(self._states.items()):
            if now - payload.created_at > STATE_TTL_SECONDS:
                del self._states[state]

    def start_github(self, return_to: Optional[str]) -> str:
        target = self.parse_return_to(return_to)
        if not self.client_id:
            return build_return_url(
                target,
                "github",
                "error",
                message="GITHUB_CLIENT_ID missing in control-plane environment.",
            )

        self._clear_expired_states()
        state = uuid4().hex
        self._states[state] = OAuthState(provider="github", return_to=target, created_at=time.time())
        query = urllib_parse.urlencode(
            {
                "client_id": self.client_id,
                "redirect_uri": self.callback_url,
                "scope": GITHUB_SCOPES,
                "state": state,
                "allow_signup": "true",
            }
        )
        return f"{GITHUB_AUTHORIZE_URL}?{query}"

    async def complete_github(
        self,
        *,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> str:
        """Finish the OAuth callback and return the dashboard URL to redirect to."""
        state_value = state or ""
        state_payload = self._states.pop(state_value, None) if state_value else None
        return_to = self.parse_return_to(state_payload.return_to if state_payload else None)

        def failure(message: str) -> str:
            return build_return_url(return_to, "github", "error", message=message)

        if state_payload is None or state_payload.provider != "github":
            return failure("Invalid OAuth state. Retry sign-in.")
        if error:
            return failure(error_description or error)
        if not code:
            return failure("Missing authorization code.")
        if not self.client_id or not self.client_secret:
            return failure("GitHub OAuth not configured. Set GITHUB_CLIENT_ID and GITHUB_CLIENT_SECRET.")

        try:
            connection = await self._exchange_code(code, state_value)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("GitHub OAuth callback failed: %s", exc)
            return failure(str(exc) or "OAuth flow failed")
        return build_return_url(return_to, "github", "success", account=connection.account_name)

    async def _exchange_code(self, code: str, state: str) -> OAuthConnection:
        token_payload = await asyncio.to_thread(
            self._request_json,
            GITHUB_TOKEN_URL,
            method="POST",
            body={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "state": state,
                "redirect_uri": self.callback_url,
            },
        )
        access_token = token_payload.get("access_token") if isinstance(token_payload, dict) else None
        if not access_token:
            detail = token_payload if isinstance(token_payload, dict) else {}
            raise RuntimeError(
                detail.get("error_description") or detail.get("error") or "Token exchange failed"
            )

        user = await asyncio.to_thread(self._request_json, f"{GITHUB_API_URL}/user", token=access_token)
        if not isinstance(user, dict) or not user.get("login") or not user.get("id"):
            raise RuntimeError("Unable to load GitHub profile")

        account_id = str(user["id"])
        key = f"github:{account_id}"
        now = isoformat_utc(utc_now())
        connection = OAuthConnection(
            provider="github",
            account_id=account_id,
            account_name=str(user["login"]),
            avatar_url=user.get("avatar_url"),
            connected_at=now,
        )
        self._connections[key] = connection
        self._tokens[key] = OAuthAccessToken(
            provider="github", account_id=account_id, token=access_token, updated_at=now
        )
        logger.info("GitHub account connected account=%s", connection.account_name)
        return connection

    def list_connections(self) -> List[OAuthConnection]:
        return list(self._connections.values())

    def find_connection(self, provider: str, account_id: Optional[str] = None) -> Optional[OAuthConnection]:
        if account_id:
            return self._connections.get(f"{provider}:{account_id}")
        return next(
            (connection for connection in self._connections.values() if connection.provider == provider),
            None,
        )

    async def resolve_connected_repo_filter(self) -> Tuple[Set[str], List[Tuple[str, str]]]:
        names: Set[str] = set()
        targets: Dict[str, Tuple[str, str]] = {}
        for configured in self.connected_repos:
            canonical = canonical_repo_name(configured)
            if canonical:
                names.add(canonical)

        for repo_path in self.connected_repo_paths:
            if not Path(repo_path).exists():
                continue
            try:
                result = await run_command(
                    ["git", "-C", repo_path, "config", "--get", "remote.origin.url"], timeout=10
                )
            except Exception as exc:  # pylint: disable=broad-except
                logger.debug("Skipping connected repo path %s: %s", repo_path, exc)
                continue
            parsed = parse_github_remote(result.get("stdout", ""))
            if parsed is None:
                continue
            owner, repo = parsed
            canonical = canonical_repo_name(repo)
            if canonical:
                names.add(canonical)
            targets[f"{owner}/{repo}".lower()] = parsed

        if not names:
            fallback = canonical_repo_name(self.default_project_slug)
            if fallback:
                names.add(fallback)
        return names, list(targets.values())

    @staticmethod
    def is_connected_repo(name: str, full_name: str, connected: Set[str]) -> bool:
        if not connected:
            return True
        return canonical_repo_name(name) in connected or canonical_repo_name(full_name) in connected

    async def list_github_repos(
        self, account_id: Optional[str], search: Optional[str], limit: int
    ) -> Tuple[List[GitHubRepository], Dict[str, Any]]:
        connection = self.find_connection("github", account_id)
        if connection is None:
            raise OAuthError(404, "No connected GitHub account found. Connect GitHub first.")
        token = self._tokens.get(f"github:{connection.account_id}")
        if token is None:
            raise OAuthError(400, "GitHub token missing for this account. Reconnect GitHub and try again.")

        query = (search or "").strip().lower()
        connected, targets = await self.resolve_connected_repo_filter()
        collected: Dict[str, GitHubRepository] = {}

        try:
            for page in range(1, MAX_REPO_PAGES + 1):
                params = urllib_parse.urlencode(
                    {"per_page": REPOS_PER_PAGE, "page": page, "sort": "updated", "direction": "desc"}
                )
                payload = await asyncio.to_thread(
                    self._request_json, f"{GITHUB_API_URL}/user/repos?{params}", token=token.token
                )
                page_repos = payload if isinstance(payload, list) else []
                for repo in page_repos:
                    if not isinstance(repo, dict) or not repo.get("id") or not repo.get("name"):
                        continue
                    name = str(repo["name"])
                    full_name = str(repo.get("full_name") or name)
                    if not self.is_connected_repo(name, full_name, connected):
                        continue
                    if query and query not in name.lower() and query not in full_name.lower():
                        continue
                    repo_id = str(repo["id"])
                    collected.setdefault(repo_id, self._to_repository(repo, connection.account_name))
                    if len(collected) >= limit:
                        break
                if len(collected) >= limit or len(page_repos) < REPOS_PER_PAGE:
                    break

            if len(collected) < limit:
                await self._append_connected_targets(collected, targets, query, token.token, limit)
        except GitHubAPIError as exc:
            logger.error("GitHub repo list failed status=%s message=%s", exc.status, exc)
            raise OAuthError(
                502, f"Unable to list GitHub repositories for this account. {exc}"
            ) from exc
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Failed to load GitHub repositories: %s", exc)
            raise OAuthError(500, "Failed to load GitHub repositories.") from exc

        meta = {
            "provider": "github",
            "accountId": connection.account_id,
            "accountName": connection.account_name,
        }
        return list(collected.values())[:limit], meta

    async def _append_connected_targets(
        self,
        collected: Dict[str, GitHubRepository],
        targets: List[Tuple[str, str]],
        query: str,
        token: str,
        limit: int,
    ) -> None:
        for owner, repo_name in targets:
            full_name_key = f"{owner}/{repo_name}".lower()
            if any(repo.full_name.lower() == full_name_key for repo in collected.values()):
                continue
            visible = (
                not query
                or query in repo_name.lower()
                or query in full_name_key
                or canonical_repo_name(query) in canonical_repo_name(repo_name)
            )
            if not visible:
                continue
            try:
                repo = await asyncio.to_thread(
                    self._request_json, f"{GITHUB_API_URL}/repos/{owner}/{repo_name}", token=token
                )
            except GitHubAPIError:
                continue
            if not isinstance(repo, dict) or not repo.get("id") or not repo.get("name"):
                continue
            repo.setdefault("full_name", f"{owner}/{repo_name}")
            collected[str(repo["id"])] = self._to_repository(repo, owner)
            if len(collected) >= limit:
                break

    @staticmethod
    def _to_repository(repo: Dict[str, Any], default_owner: str) -> GitHubRepository:
        owner = repo.get("owner") if isinstance(repo.get("owner"), dict) else {}
        return GitHubRepository(
            id=str(repo["id"]),
            name=str(repo.get("name") or "unknown"),
            full_name=str(repo.get("full_name") or repo.get("name") or "unknown"),
            owner=str(owner.get("login") or default_owner),
            updated_at=str(repo.get("updated_at") or isoformat_utc(utc_now())),
            visibility="private" if repo.get("private") else "public",
        )

    def _request_json(
        self,
        url: str,
        *,
        method: str = "GET",
        token: Optional[str] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        headers = {"Accept": "application/vnd.github+json", "User-Agent": USER_AGENT}
        data = None
        if body is not None:
            headers["Accept"] = "application/json"
            headers["Content-Type"] = "application/json"
            data = json.dumps(body).encode("utf-8")
        if token:
            headers["Authorization"] = f"Bearer {token}"

        request = urllib_request.Request(url, data=data, headers=headers, method=method)
        try:
            with urllib_request.urlopen(request, timeout=15) as response:
                raw = response.read()
        except urllib_error.HTTPError as exc:
            try:
                detail = json.loads(exc.read().decode("utf-8", errors="ignore") or "{}")
            except ValueError:
                detail = {}
            message = (detail.get("message") if isinstance(detail, dict) else None) or (
                f"GitHub request failed with status {exc.code}"
            )
            raise GitHubAPIError(exc.code, message, detail) from exc
        except urllib_error.URLError as exc:
            raise RuntimeError(f"GitHub request failed: {exc.reason}") from exc

        try:
            return json.loads(raw.decode("utf-8"))
        except ValueError as exc:
            raise RuntimeError("Failed to parse GitHub response") from exc

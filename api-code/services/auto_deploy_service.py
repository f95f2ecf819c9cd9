from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
import re
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

from domain import AutoDeployStatus, canonical_repo_name, shell_quote
from models import AutoDeployContext, AutoDeployJob, ProjectConfig, WebhookAck
from repositories import InMemoryAutoDeployJobRepository
from settings import Settings

from .command_runner import build_ssh_command, run_command
from .project_registry import ProjectRegistry


logger = logging.getLogger("control-plane.auto-deploy")

BRANCH_REF_PREFIX = "refs/heads/"
SIGNATURE_PREFIX = "sha256="
SIGNATURE_HEX_PATTERN = re.compile(r"^[a-f0-9]{64}$", re.IGNORECASE)
DEPLOY_WRAPPER = "./deploy-with-track.sh"
SSH_CONNECT_TIMEOUT = 10


class WebhookError(Exception):
    """Rejected webhook; ``status_code`` is the HTTP status to answer with."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def branch_from_ref(ref: Any) -> str:
    raw_ref = ref.strip() if isinstance(ref, str) else ""
    if not raw_ref.startswith(BRANCH_REF_PREFIX):
        return ""
    return raw_ref[len(BRANCH_REF_PREFIX) :]


def compute_signature(secret: str, raw_body: bytes) -> str:
    digest = hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(signature_header: str, raw_body: bytes, secret: str) -> bool:
    """Check an ``X-Hub-Signature-256`` value against the exact request body."""
    signature = (signature_header or "").strip()
    if not signature.startswith(SIGNATURE_PREFIX) or not secret:
        return False
    received_hex = signature[len(SIGNATURE_PREFIX) :]
    if not SIGNATURE_HEX_PATTERN.match(received_hex):
        return False
    expected = hmac.new(secret.encode(), raw_body, hashlib.sha256).digest()
    return hmac.compare_digest(bytes.fromhex(received_hex), expected)


def verify_token(received: Optional[str], expected: str) -> bool:
    return hmac.compare_digest((received or "").strip().encode(), expected.encode())


def build_deploy_script(project: ProjectConfig, branch: str) -> str:
    """Shell script that syncs ``branch`` from origin and runs the deploy command."""
    repo_path = shell_quote(project.repo_path)
    quoted_branch = shell_quote(branch)
    origin_ref = shell_quote(f"origin/{branch}")
    deploy_command = shell_quote(project.deploy_command)
    return "\n".join(
        [
            "set -euo pipefail",
            f"cd {repo_path}",
            f"git fetch origin {quoted_branch}",
            f"git checkout {quoted_branch} || git checkout -b {quoted_branch} {origin_ref}",
            f"git reset --hard {origin_ref}",
            f"if [[ -x {DEPLOY_WRAPPER} ]]; then",
            f"  {DEPLOY_WRAPPER} bash -lc {deploy_command}",
            "else",
            f"  bash -lc {deploy_command}",
            "fi",
        ]
    )


def find_project(
    projects: Sequence[ProjectConfig],
    repository_name: str,
    repository_full_name: str,
    branch: str,
) -> Optional[ProjectConfig]:
    """First configured project whose repository and branch accept the push."""
    incoming_full_name = repository_full_name.strip().lower()
    incoming_canonical = canonical_repo_name(repository_name or repository_full_name)

    for project in projects:
        if project.repository_has_owner:
            repo_matches = project.repository.lower() == incoming_full_name
        else:
            repo_matches = project.repository_canonical == incoming_canonical
        if not repo_matches:
            continue
        if project.branch != "*" and project.branch != branch:
            continue
        return project
    return None


def _text(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    return value.strip() if isinstance(value, str) else ""


def _section(payload: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = payload.get(key)
    return value if isinstance(value, dict) else {}


def build_context(payload: Mapping[str, Any], branch: str) -> AutoDeployContext:
    repository = _section(payload, "repository")
    head_commit = _section(payload, "head_commit")
    repository_name = _text(repository, "name")
    commit_source = payload.get("after")
    if not isinstance(commit_source, str):
        commit_source = head_commit.get("id")
    commit_hash = commit_source[:12] if isinstance(commit_source, str) else ""
    pusher = _text(_section(payload, "pusher"), "name") or _text(_section(payload, "sender"), "login")
    return AutoDeployContext(
        repository_name=repository_name,
        repository_full_name=_text(repository, "full_name") or repository_name,
        branch=branch,
        commit_hash=commit_hash or "unknown",
        commit_message=_text(head_commit, "message"),
        pusher=pusher or "unknown",
    )


class AutoDeployService:
    """Validates push webhooks and runs deploys through per project+branch queues."""

    def __init__(
        self,
        registry: ProjectRegistry,
        repository: InMemoryAutoDeployJobRepository,
        *,
        enabled: bool = False,
        webhook_token: str = "",
        webhook_secret: str = "",
        timeout_sec: int = 900,
    ) -> None:
        self.registry = registry
        self.repository = repository
        self.enabled = enabled
        self.webhook_token = (webhook_token or "").strip()
        self.webhook_secret = (webhook_secret or "").strip()
        self.timeout_sec = timeout_sec
        self._queues: Dict[str, "asyncio.Task[None]"] = {}
        logger.info(
            "AutoDeployService initialized (enabled=%s, auth=%s, projects=%s, timeout=%ss)",
            self.enabled,
            self.auth_mode or "missing",
            len(self.registry),
            self.timeout_sec,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        registry: ProjectRegistry,
        repository: InMemoryAutoDeployJobRepository,
    ) -> "AutoDeployService":
        return cls(
            registry,
            repository,
            enabled=settings.auto_deploy_enabled,
            webhook_token=settings.auto_deploy_webhook_token,
            webhook_secret=settings.github_webhook_secret,
            timeout_sec=settings.auto_deploy_timeout_sec,
        )

    @property
    def auth_mode(self) -> Optional[str]:
        if self.webhook_token:
            return "token"
        if self.webhook_secret:
            return "signature"
        return None

    @property
    def active_queue_keys(self) -> List[str]:
        return list(self._queues)

    def _authenticate(self, token: Optional[str], signature: Optional[str], raw_body: bytes) -> None:
        if self.auth_mode == "token":
            if not verify_token(token, self.webhook_token):
                raise WebhookError(401, "Invalid webhook token.")
        elif not verify_signature(signature or "", raw_body, self.webhook_secret):
            raise WebhookError(401, "Invalid webhook signature.")

    async def handle_webhook(
        self,
        *,
        event: Optional[str],
        raw_body: bytes,
        token: Optional[str] = None,
        signature: Optional[str] = None,
    ) -> Tuple[int, WebhookAck]:
        if not self.enabled:
            raise WebhookError(503, "Auto deploy is disabled. Set AUTO_DEPLOY_ENABLED=true.")
        if self.auth_mode is None:
            logger.error("Auto deploy webhook auth is missing")
            raise WebhookError(
                500, "Webhook auth missing. Set AUTO_DEPLOY_WEBHOOK_TOKEN or GITHUB_WEBHOOK_SECRET."
            )
        self._authenticate(token, signature, raw_body)

        try:
            payload = json.loads(raw_body or b"null")
        except (ValueError, RecursionError):
            payload = None
        if not isinstance(payload, dict):
            raise WebhookError(400, "Invalid webhook payload.")

        event_name = (event or "").strip().lower()
        if event_name == "ping":
            return 200, WebhookAck(status="ok", message="GitHub webhook verified.")
        if event_name != "push":
            return 202, WebhookAck(
                status="ignored", reason=f"Unsupported event {event_name or 'unknown'}."
            )

        if len(self.registry) == 0:
            raise WebhookError(500, "AUTO_DEPLOY_PROJECTS is empty or invalid.")

        branch = branch_from_ref(payload.get("ref"))
        if not branch:
            return 202, WebhookAck(status="ignored", reason="Push event is not targeting a branch.")
        if payload.get("deleted"):
            return 202, WebhookAck(status="ignored", reason=f"Branch {branch} was deleted.")

        context = build_context(payload, branch)
        if not context.repository_full_name:
            raise WebhookError(400, "Repository information is missing in webhook payload.")

        project = find_project(
            self.registry.projects,
            context.repository_name,
            context.repository_full_name,
            branch,
        )
        if project is None:
            return 202, WebhookAck(
                status="ignored",
                reason=f"No matching auto deploy project for {context.repository_full_name}:{branch}.",
            )

        job = await self.enqueue(project, context)
        return 202, WebhookAck(
            status="queued",
            job_id=job.job_id,
            project_name=project.project_name,
            branch=branch,
            repository=context.repository_full_name,
        )

    async def enqueue(self, project: ProjectConfig, context: AutoDeployContext) -> AutoDeployJob:
        """Chain a deploy after the in-flight job for the same project and branch."""
        queue_key = f"{project.project_slug}:{context.branch}"
        job = await self.repository.create_job(
            AutoDeployJob(
                job_id=uuid4().hex,
                project_slug=project.project_slug,
                project_name=project.project_name,
                queue_key=queue_key,
                context=context,
                remote_host=project.remote_host,
            )
        )
        previous = self._queues.get(queue_key)
        task = asyncio.create_task(self._run_queued(job, project, previous))
        self._queues[queue_key] = task
        task.add_done_callback(lambda finished: self._release(queue_key, finished))
        return job

    def _release(self, queue_key: str, task: "asyncio.Task[None]") -> None:
        if self._queues.get(queue_key) is task:
            del self._queues[queue_key]
        error = None if task.cancelled() else task.exception()
        if error is not None:
            logger.error(
                "Auto deploy queue task crashed queue=%s error=%s", queue_key, error, exc_info=error
            )

    async def drain(self) -> None:
        """Wait for every queued deploy to settle."""
        while self._queues:
            await asyncio.wait(list(self._queues.values()))

    async def _run_queued(
        self,
        job: AutoDeployJob,
        project: ProjectConfig,
        previous: Optional["asyncio.Task[None]"],
    ) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait({previous})

        context = job.context
        logger.info(
            "Auto deploy started job=%s project=%s repository=%s branch=%s commit=%s pusher=%s",
            job.job_id,
            project.project_name,
            context.repository_full_name,
            context.branch,
            context.commit_hash,
            context.pusher,
        )
        await self.repository.mark_status(job.job_id, AutoDeployStatus.RUNNING)
        try:
            await self.run_deploy(project, context, job.job_id)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception(
                "Auto deploy failed job=%s project=%s repository=%s branch=%s commit=%s "
                "message=%r pusher=%s error=%s",
                job.job_id,
                project.project_name,
                context.repository_full_name,
                context.branch,
                context.commit_hash,
                context.commit_message,
                context.pusher,
                exc,
            )
            await self.repository.mark_status(job.job_id, AutoDeployStatus.FAILED, error=str(exc))
            return
        await self.repository.mark_status(job.job_id, AutoDeployStatus.COMPLETED)

    def build_command(self, project: ProjectConfig, branch: str) -> List[str]:
        script = build_deploy_script(project, branch)
        target_host = (project.remote_host or "").strip()
        if target_host:
            return build_ssh_command(
                target_host, f"bash -lc {shell_quote(script)}", connect_timeout=SSH_CONNECT_TIMEOUT
            )
        return ["bash", "-lc", script]

    async def run_deploy(
        self, project: ProjectConfig, context: AutoDeployContext, job_id: str
    ) -> Dict[str, Any]:
        started = time.monotonic()
        result = await self._run_command(
            self.build_command(project, context.branch),
            timeout=self.timeout_sec,
            description=f"auto deploy {project.project_slug}:{context.branch}",
        )
        logger.info(
            "Auto deploy completed job=%s project=%s repository=%s branch=%s duration_ms=%s",
            job_id,
            project.project_name,
            context.repository_full_name,
            context.branch,
            int((time.monotonic() - started) * 1000),
        )
        return result

    async def _run_command(
        self, command: Sequence[str], *, timeout: Optional[float] = None, description: str = ""
    ) -> Dict[str, Any]:
        return await run_command(command, timeout=timeout, description=description)

    async def get_job(self, job_id: str) -> AutoDeployJob:
        job = await self.repository.get_job(job_id)
        if not job:
            raise RuntimeError(f"auto deploy job not found: {job_id}")
        return job

    async def list_recent_jobs(self, limit: int = 20) -> List[AutoDeployJob]:
        return await self.repository.list_recent(limit)

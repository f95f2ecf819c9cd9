from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlsplit

from settings import Settings

from .command_runner import run_command
from .log_readers import DeploymentTrackerReader
from .project_registry import ProjectRegistry


logger = logging.getLogger("control-plane.screenshots")

READY_STATUS = "Ready"
UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class ScreenshotError(Exception):
    def __init__(self, status_code: int, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.extra = extra


def is_http_url(value: str) -> bool:
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return parts.scheme in {"http", "https"} and bool(parts.netloc)


class ScreenshotService:
    """Captures and caches a PNG of a project's preview URL per deployment."""

    def __init__(
        self,
        registry: ProjectRegistry,
        tracker_reader: DeploymentTrackerReader,
        *,
        cache_dir: Path | str,
        viewport: str = "1500,700",
        wait_ms: int = 5000,
        wait_selector: str = "",
        timeout_sec: int = 60,
    ) -> None:
        self.registry = registry
        self.tracker_reader = tracker_reader
        self.cache_dir = Path(cache_dir)
        self.viewport = viewport.strip() or "1500,700"
        self.wait_ms = wait_ms
        self.wait_selector = wait_selector.strip()
        self.timeout_sec = timeout_sec
        self._captures: Dict[str, "asyncio.Task[None]"] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        registry: ProjectRegistry,
        tracker_reader: DeploymentTrackerReader,
    ) -> "ScreenshotService":
        return cls(
            registry,
            tracker_reader,
            cache_dir=settings.screenshot_cache_dir,
            viewport=settings.screenshot_viewport,
            wait_ms=settings.screenshot_wait_ms,
            wait_selector=settings.screenshot_wait_selector,
            timeout_sec=settings.screenshot_timeout_sec,
        )

    def build_capture_command(self, url: str, output_path: Path) -> List[str]:
        command = [
            "npx",
            "--yes",
            "playwright",
            "screenshot",
            "--browser",
            "chromium",
            "--viewport-size",
            self.viewport,
            "--wait-for-timeout",
            str(self.wait_ms),
        ]
        if self.wait_selector:
            command.extend(["--wait-for-selector", self.wait_selector])
        command.extend([url, str(output_path)])
        return command

    def screenshot_path(self, project_slug: str, deployment_id: str) -> Path:
        filename = UNSAFE_FILENAME_CHARS.sub("_", deployment_id or "unknown")
        return self.cache_dir / project_slug / f"{filename}.png"

    async def latest_screenshot(self, project: Optional[str], *, refresh: bool = False) -> bytes:
        project_slug = self.registry.resolve_project_slug(project)
        target_url = self.registry.preview_url(project_slug)
        env_key = self.registry.preview_url_env_key(project_slug)
        if not target_url:
            raise ScreenshotError(500, f"Screenshot URL missing. Set {env_key} in .env.")
        if not is_http_url(target_url):
            raise ScreenshotError(500, f"Invalid {env_key} ({target_url}). Must be http(s).")

        try:
            latest, _ = await self.tracker_reader.latest(project_slug)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Failed to resolve latest deployment for screenshot: %s", exc)
            raise ScreenshotError(500, "Unable to load latest deployment.") from exc
        if latest is None:
            raise ScreenshotError(404, "No deployments recorded yet.")

        deployment_id = latest.deployment_id or "unknown"
        output_path = self.screenshot_path(project_slug, deployment_id)
        await asyncio.to_thread(output_path.parent.mkdir, parents=True, exist_ok=True)

        cached = output_path.exists()
        if cached and (not refresh or latest.status != READY_STATUS):
            return await asyncio.to_thread(output_path.read_bytes)
        if latest.status != READY_STATUS:
            raise ScreenshotError(
                425,
                f"Latest deployment is {latest.status}. "
                "Screenshot is available only when status is Ready.",
                status=latest.status,
                deploymentId=deployment_id,
            )

        await self._capture_once(f"{project_slug}:{deployment_id}", target_url, output_path)
        if not output_path.exists():
            raise ScreenshotError(
                500,
                "Screenshot capture failed. Ensure Playwright browsers are installed: "
                "npx playwright install chromium",
            )
        return await asyncio.to_thread(output_path.read_bytes)

    async def _capture_once(self, cache_key: str, url: str, output_path: Path) -> None:
        """Run one capture per key; concurrent callers await the same task."""
        task = self._captures.get(cache_key)
        if task is None:
            task = asyncio.create_task(self._capture(url, output_path))
            self._captures[cache_key] = task
            task.add_done_callback(lambda _: self._captures.pop(cache_key, None))
        await asyncio.wait({task})

    async def _capture(self, url: str, output_path: Path) -> None:
        try:
            await self._run_command(
                self.build_capture_command(url, output_path),
                timeout=self.timeout_sec,
                description=f"screenshot {url}",
            )
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("Screenshot capture failed path=%s error=%s", output_path, exc)

    async def _run_command(
        self, command: Sequence[str], *, timeout: Optional[float] = None, description: str = ""
    ) -> Dict[str, Any]:
        return await run_command(command, timeout=timeout, description=description)

from __future__ import annotations

import asyncio
import sys
import tempfile
from pathlib import Path
from typing import Optional
import unittest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
API_CODE_PATH = PROJECT_ROOT / "api-code"
if str(API_CODE_PATH) not in sys.path:
    sys.path.insert(0, str(API_CODE_PATH))

from fixtures import build_registry
from models import DeploymentRecord, DeploymentsMeta
from services import ScreenshotError, ScreenshotService


PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"


class FakeTracker:
    def __init__(self, record: Optional[DeploymentRecord]) -> None:
        self.record = record

    async def latest(self, project):
        return self.record, DeploymentsMeta(project=project or "acme-app", mode="local")


def deployment(status: str = "Ready", deployment_id: str = "DEP-1") -> DeploymentRecord:
    return DeploymentRecord(
        deployment_id=deployment_id,
        status=status,
        project_name="Acme App",
        tracked_at="2024-01-01T10:00:00.000Z",
    )


class ScreenshotServiceTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.registry = build_registry(env={"ACME_APP_PREVIEW_URL": "https://acme.example.com"})
        self.captures = 0

    async def asyncTearDown(self) -> None:
        self.tmpdir.cleanup()

    def make_service(self, record: Optional[DeploymentRecord], *, writes: bool = True) -> ScreenshotService:
        service = ScreenshotService(
            self.registry,
            FakeTracker(record),  # type: ignore[arg-type]
            cache_dir=self.tmpdir.name,
            wait_selector="#app",
        )

        async def fake_run(command, *, timeout=None, description=""):
            self.captures += 1
            await asyncio.sleep(0.02)
            if writes:
                Path(command[-1]).write_bytes(PNG_BYTES)
            return {"stdout": "", "stderr": "", "returncode": 0}

        service._run_command = fake_run  # type: ignore[method-assign]
        return service

    async def test_ready_deployment_is_captured_once_and_cached(self) -> None:
        service = self.make_service(deployment())
        first, second = await asyncio.gather(
            service.latest_screenshot("acme-app"), service.latest_screenshot("acme-app")
        )
        self.assertEqual(first, PNG_BYTES)
        self.assertEqual(second, PNG_BYTES)
        self.assertEqual(self.captures, 1)

        await service.latest_screenshot("acme-app")
        self.assertEqual(self.captures, 1)
        await service.latest_screenshot("acme-app", refresh=True)
        self.assertEqual(self.captures, 2)
        self.assertTrue((Path(self.tmpdir.name) / "acme-app" / "DEP-1.png").exists())

    async def test_not_ready_without_cache_is_too_early(self) -> None:
        service = self.make_service(deployment(status="Building"))
        with self.assertRaises(ScreenshotError) as ctx:
            await service.latest_screenshot("acme-app")
        self.assertEqual(ctx.exception.status_code, 425)
        self.assertEqual(ctx.exception.extra["status"], "Building")
        self.assertEqual(self.captures, 0)

    async def test_not_ready_serves_cached_image(self) -> None:
        cached = Path(self.tmpdir.name) / "acme-app" / "DEP-1.png"
        cached.parent.mkdir(parents=True)
        cached.write_bytes(PNG_BYTES)
        service = self.make_service(deployment(status="Building"))
        self.assertEqual(await service.latest_screenshot("acme-app", refresh=True), PNG_BYTES)
        self.assertEqual(self.captures, 0)

    async def test_missing_deployments(self) -> None:
        service = self.make_service(None)
        with self.assertRaises(ScreenshotError) as ctx:
            await service.latest_screenshot("acme-app")
        self.assertEqual(ctx.exception.status_code, 404)

    async def test_preview_url_problems(self) -> None:
        service = self.make_service(deployment())
        with self.assertRaises(ScreenshotError) as ctx:
            await service.latest_screenshot("beta-app")
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertIn("BETA_APP_PREVIEW_URL", ctx.exception.message)

        self.registry = build_registry(env={"ACME_APP_PREVIEW_URL": "ftp://acme.example.com"})
        service = self.make_service(deployment())
        with self.assertRaises(ScreenshotError) as ctx:
            await service.latest_screenshot("acme-app")
        self.assertEqual(ctx.exception.status_code, 500)

    async def test_failed_capture(self) -> None:
        service = self.make_service(deployment(), writes=False)
        with self.assertRaises(ScreenshotError) as ctx:
            await service.latest_screenshot("acme-app")
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertIn("playwright", ctx.exception.message)

    def test_capture_command_and_path(self) -> None:
        service = self.make_service(deployment())
        output = service.screenshot_path("acme-app", "../../etc/passwd")
        self.assertEqual(output.parent, Path(self.tmpdir.name) / "acme-app")
        command = service.build_capture_command("https://acme.example.com", output)
        self.assertEqual(command[:4], ["npx", "--yes", "playwright", "screenshot"])
        self.assertIn("--wait-for-selector", command)
        self.assertEqual(command[-2:], ["https://acme.example.com", str(output)])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()

from __future__ import annotations

import json
import sys
import tempfile
from pathlib import Path
import unittest

from fastapi.testclient import TestClient

PROJECT_ROOT = Path(__file__).resolve().parent.parent
API_CODE_PATH = PROJECT_ROOT / "api-code"
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))
if str(API_CODE_PATH) not in sys.path:
    sys.path.insert(0, str(API_CODE_PATH))

from app_main import build_app
from fixtures import projects_json
from settings import Settings


TRACKER_LINES = [
    {"projectName": "Acme App", "deploymentId": "a1", "trackedAt": "2024-01-01T10:00:00Z"},
    {"projectName": "Beta App", "deploymentId": "b1", "trackedAt": "2024-01-01T10:30:00Z", "status": "Building"},
    {"projectName": "Acme App", "deploymentId": "a2", "trackedAt": "2024-01-01T11:00:00Z", "commitHash": "abc123"},
]

ACCESS_LINES = [
    json.dumps({"timestamp": "2024-01-01T10:00:00Z", "path": "/", "host": "acme.example.com", "status": 200}),
    '203.0.113.9 - - [01/Jan/2024:11:00:00 +0000] "GET /beta-app/home HTTP/1.1" 404 12 "-" "curl/8.0"',
    json.dumps({"timestamp": "2024-01-01T12:00:00Z", "path": "/", "host": "dash.example.com"}),
]


async def fake_run_command(command, *, timeout=None, description=""):
    return {"stdout": "", "stderr": "", "returncode": 0}


class ControlPlaneApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        root = Path(self.tmpdir.name)
        tracker_path = root / "deployments.jsonl"
        tracker_path.write_text("\n".join(json.dumps(line) for line in TRACKER_LINES), encoding="utf-8")
        access_path = root / "access.log"
        access_path.write_text("\n".join(ACCESS_LINES), encoding="utf-8")

        settings = Settings.model_validate(
            {
                "AUTO_DEPLOY_PROJECTS": projects_json(),
                "AUTO_DEPLOY_ENABLED": "true",
                "AUTO_DEPLOY_WEBHOOK_TOKEN": "tok",
                "DEPLOY_TRACKER_LOG_PATH": str(tracker_path),
                "REQUEST_LOG_LOCAL_PATH": str(access_path),
                "CONTROL_PLANE_SERVER_HOST": "srv-1",
                "CONTROL_PLANE_PUBLIC_URL": "https://api.example.com",
                "DASHBOARD_PUBLIC_URL": "https://dash.example.com",
                "DEFAULT_PREVIEW_URL": "",
                "SCREENSHOT_CACHE_DIR": str(root / "screenshots"),
            }
        )
        app = build_app(settings, env={})
        app.state.auto_deploy_service._run_command = fake_run_command
        self.client = TestClient(app)
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)
        self.addCleanup(self.tmpdir.cleanup)

    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["status"], "ok")
        self.assertEqual(payload["service"], "control-plane")
        self.assertTrue(payload["timestamp"].endswith("Z"))
        self.assertEqual(self.client.get("/v1").json()["status"], "ok")

    def test_projects(self) -> None:
        payload = self.client.get("/v1/projects").json()
        self.assertEqual(payload["meta"], {"defaultProjectSlug": "acme-app", "count": 2})
        acme, beta = payload["data"]
        self.assertEqual(acme["projectSlug"], "acme-app")
        self.assertEqual(acme["category"], "web")
        self.assertEqual(acme["repoPath"], "/var/www/projects/web/acme")
        self.assertEqual(beta["branch"], "*")
        self.assertEqual(beta["remoteHost"], "deploy@beta.internal")
        self.assertEqual(beta["previewUrl"], "")

    def test_deployments(self) -> None:
        response = self.client.get("/v1/deployments", params={"limit": "1"})
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(len(payload["data"]), 1)
        record = payload["data"][0]
        self.assertEqual(record["deploymentId"], "A2")
        self.assertEqual(record["commitHash"], "abc123")
        self.assertEqual(record["projectName"], "Acme App")
        self.assertEqual(record["serverHost"], "srv-1")
        self.assertEqual(record["source"], "server-tracker")
        self.assertIn("createdRelative", record)
        self.assertEqual(payload["meta"]["project"], "acme-app")
        self.assertEqual(payload["meta"]["mode"], "local")

        latest = self.client.get("/v1/deployments/latest", params={"project": "beta-app"}).json()
        self.assertEqual(latest["data"]["deploymentId"], "B1")
        self.assertEqual(latest["data"]["status"], "Building")

    def test_unknown_project_is_rejected(self) -> None:
        for path in ["/v1/deployments", "/v1/deployments/latest", "/v1/logs", "/v1/deployments/latest/screenshot"]:
            with self.subTest(path=path):
                response = self.client.get(path, params={"project": "gamma"})
                self.assertEqual(response.status_code, 400)
                self.assertEqual(
                    response.json(),
                    {"error": "Unknown project (gamma). Configured projects: acme-app, beta-app"},
                )

    def test_request_logs(self) -> None:
        payload = self.client.get("/v1/logs").json()
        self.assertEqual([entry["projectSlug"] for entry in payload["data"]], ["beta-app", "acme-app"])
        self.assertEqual(payload["data"][0]["statusCode"], 404)
        self.assertEqual(payload["data"][0]["source"], "server-access-log")
        self.assertEqual(payload["meta"]["project"], "all")
        self.assertEqual(payload["meta"]["tailedLines"], 2500)

        ranged = self.client.get(
            "/v1/logs", params={"start": "2024-01-01T10:30:00Z", "end": "2024-01-01T23:00:00Z"}
        ).json()
        self.assertEqual([entry["projectSlug"] for entry in ranged["data"]], ["beta-app"])

    def test_request_log_time_validation(self) -> None:
        response = self.client.get("/v1/logs", params={"start": "yesterday"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Invalid start timestamp. Use ISO date-time."})

        response = self.client.get("/v1/logs", params={"end": "nope"})
        self.assertEqual(response.json(), {"error": "Invalid end timestamp. Use ISO date-time."})

        response = self.client.get(
            "/v1/logs", params={"start": "2024-01-02T00:00:00Z", "end": "2024-01-01T00:00:00Z"}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Invalid time range. End must be after start."})

    def test_webhook_queue_and_job_ledger(self) -> None:
        payload = {
            "ref": "refs/heads/main",
            "after": "0123456789abcdef",
            "repository": {"name": "acme", "full_name": "org/acme"},
            "pusher": {"name": "octocat"},
        }
        response = self.client.post(
            "/v1/webhooks/github",
            params={"token": "tok"},
            content=json.dumps(payload),
            headers={"X-GitHub-Event": "push", "Content-Type": "application/json"},
        )
        self.assertEqual(response.status_code, 202)
        ack = response.json()
        self.assertEqual(
            {key: ack[key] for key in ("status", "projectName", "branch", "repository")},
            {"status": "queued", "projectName": "Acme App", "branch": "main", "repository": "org/acme"},
        )

        jobs = self.client.get("/v1/webhooks/jobs").json()
        self.assertEqual(jobs["meta"]["count"], 1)
        self.assertEqual(jobs["data"][0]["jobId"], ack["jobId"])
        self.assertEqual(jobs["data"][0]["context"]["commitHash"], "0123456789ab")

        job = self.client.get(f"/v1/webhooks/jobs/{ack['jobId']}").json()
        self.assertEqual(job["data"]["projectSlug"], "acme-app")
        self.assertEqual(job["data"]["queueKey"], "acme-app:main")

        missing = self.client.get("/v1/webhooks/jobs/nope")
        self.assertEqual(missing.status_code, 404)
        self.assertIn("error", missing.json())

    def test_webhook_rejections(self) -> None:
        body = json.dumps({"ref": "refs/heads/main", "repository": {"full_name": "org/acme"}})
        response = self.client.post(
            "/v1/webhooks/github", content=body, headers={"X-GitHub-Event": "push"}
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {"error": "Invalid webhook token."})

        response = self.client.post(
            "/v1/webhooks/github",
            params={"token": "tok"},
            content=body,
            headers={"X-GitHub-Event": "issues"},
        )
        self.assertEqual(response.status_code, 202)
        self.assertEqual(response.json()["status"], "ignored")

        response = self.client.post(
            "/v1/webhooks/github", params={"token": "tok"}, content="[]", headers={"X-GitHub-Event": "push"}
        )
        self.assertEqual(response.status_code, 400)

    def test_screenshot_without_preview_url(self) -> None:
        response = self.client.get("/v1/deployments/latest/screenshot")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Screenshot URL missing. Set ACME_APP_PREVIEW_URL in .env."})

    def test_oauth_endpoints(self) -> None:
        self.assertEqual(self.client.get("/v1/oauth/connections").json(), {"data": []})

        response = self.client.get("/v1/oauth/github/repos")
        self.assertEqual(response.status_code, 404)

        response = self.client.get("/v1/oauth/gitlab/start", follow_redirects=False)
        self.assertEqual(response.status_code, 302)
        self.assertEqual(response.headers["location"], "https://gitlab.com/users/sign_in")

        response = self.client.get(
            "/v1/oauth/github/start",
            params={"returnTo": "https://dash.example.com/repos"},
            follow_redirects=False,
        )
        self.assertEqual(response.status_code, 302)
        self.assertTrue(
            response.headers["location"].startswith("https://dash.example.com/repos?oauth=github-error")
        )


if __name__ == "__main__":  # pragma: no cover
    unittest.main()

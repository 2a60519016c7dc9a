import hashlib
import hmac
import json
import unittest

from fastapi.testclient import TestClient
from fakes import FakeClientFactory, FakeWorkflowApi

from workflow_dispatcher.config import Settings
from workflow_dispatcher.main import create_app
from workflow_dispatcher.services import build_container

SECRET = "s3cret"


def signed_headers(body: bytes, event: str) -> dict:
    digest = hmac.new(SECRET.encode(), body, hashlib.sha256).hexdigest()
    return {
        "X-Hub-Signature-256": f"sha256={digest}",
        "X-GitHub-Event": event,
        "X-GitHub-Delivery": "72d3162e-cc78-11e3-81ab-4c9367dc0958",
        "Content-Type": "application/json",
    }


class TestApi(unittest.TestCase):
    def setUp(self):
        settings = Settings(GITHUB_WEBHOOK_SECRET=SECRET, WEBHOOK_PATH="/hooks/github")
        container = build_container(settings, clients=FakeClientFactory(FakeWorkflowApi()))
        self.client = TestClient(create_app(settings, container))

    def test_health(self):
        response = self.client.get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")
        self.assertIn("X-Request-ID", response.headers)

    def test_database_health_without_database(self):
        response = self.client.get("/api/health/db")

        self.assertEqual(response.json()["database"], "not_configured")

    def test_webhook_rejects_bad_signature(self):
        body = json.dumps({"zen": "Design for failure."}).encode()
        headers = signed_headers(body, "ping")
        headers["X-Hub-Signature-256"] = "sha256=deadbeef"

        response = self.client.post("/hooks/github", content=body, headers=headers)

        self.assertEqual(response.status_code, 401)

    def test_webhook_accepts_signed_ping(self):
        body = json.dumps({"zen": "Design for failure."}).encode()

        response = self.client.post("/hooks/github", content=body, headers=signed_headers(body, "ping"))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok", "zen": "Design for failure."})

    def test_webhook_rejects_non_object_payload(self):
        body = b"[1, 2, 3]"

        response = self.client.post("/hooks/github", content=body, headers=signed_headers(body, "push"))

        self.assertEqual(response.status_code, 400)

    def test_workflow_runs_unavailable_without_database(self):
        response = self.client.get("/api/workflow-runs/acme/api")

        self.assertEqual(response.status_code, 503)


if __name__ == "__main__":
    unittest.main()

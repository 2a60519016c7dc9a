import json
import unittest

import httpx

from workflow_dispatcher.github_client import GitHubClient, GitHubTokenPool
from workflow_dispatcher.github_exceptions import (
    GithubAllRateLimitError,
    GithubApiError,
    GithubConfigurationError,
)


class RecordingTransport:
    def __init__(self, handler):
        self.requests = []
        self._handler = handler
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)


class TestGitHubClient(unittest.IsolatedAsyncioTestCase):
    async def test_dispatch_workflow_posts_ref_and_inputs(self):
        recorder = RecordingTransport(lambda request: httpx.Response(204))
        client = GitHubClient(token="t0k", transport=recorder.transport)

        result = await client.dispatch_workflow("acme", "api", 101, "refs/heads/main", {})
        await client.close()

        self.assertIsNone(result)
        request = recorder.requests[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(request.url.path, "/repos/acme/api/actions/workflows/101/dispatches")
        self.assertEqual(json.loads(request.content), {"ref": "refs/heads/main", "inputs": {}})
        self.assertEqual(request.headers["Authorization"], "Bearer t0k")
        self.assertEqual(request.headers["X-GitHub-Api-Version"], "2022-11-28")

    async def test_error_status_raises_api_error_with_message(self):
        recorder = RecordingTransport(
            lambda request: httpx.Response(422, json={"message": "No ref found for: nope"})
        )
        client = GitHubClient(token="t0k", transport=recorder.transport)

        with self.assertRaises(GithubApiError) as ctx:
            await client.dispatch_workflow("acme", "api", 101, "nope", {"version": "1"})
        await client.close()

        self.assertEqual(ctx.exception.status_code, 422)
        self.assertEqual(ctx.exception.message, "No ref found for: nope")

    async def test_list_workflow_runs_parses_snapshots(self):
        body = {
            "total_count": 1,
            "workflow_runs": [
                {
                    "id": 900,
                    "name": "Generate SDK",
                    "workflow_id": 101,
                    "status": "in_progress",
                    "conclusion": None,
                    "head_sha": "abc123",
                    "head_branch": "main",
                    "event": "workflow_dispatch",
                    "run_started_at": "2024-05-01T12:00:00Z",
                    "created_at": "2024-05-01T11:59:00Z",
                    "updated_at": "2024-05-01T12:01:00Z",
                    "html_url": "https://github.com/acme/api/actions/runs/900",
                }
            ],
        }
        recorder = RecordingTransport(lambda request: httpx.Response(200, json=body))
        client = GitHubClient(token="t0k", transport=recorder.transport)

        runs = await client.list_workflow_runs("acme", "api", 101, per_page=5)
        await client.close()

        self.assertEqual(len(runs), 1)
        self.assertEqual(runs[0].id, 900)
        self.assertEqual(runs[0].status, "in_progress")
        self.assertEqual(runs[0].event, "workflow_dispatch")
        self.assertIsNotNone(runs[0].run_started_at)
        self.assertEqual(recorder.requests[0].url.params["per_page"], "5")

    async def test_close_releases_http_client(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(204))
        client = GitHubClient(token="t0k", transport=transport)

        await client.close()

        self.assertTrue(client._rest.is_closed)
        self.assertFalse(hasattr(client, "__aenter__"))

    async def test_rate_limited_token_is_rotated(self):
        def handler(request):
            if request.headers["Authorization"] == "Bearer first":
                return httpx.Response(
                    403,
                    json={"message": "API rate limit exceeded"},
                    headers={"X-RateLimit-Reset": "4102444800"},
                )
            return httpx.Response(200, json={"workflows": [{"id": 1, "name": "SDK"}]})

        recorder = RecordingTransport(handler)
        pool = GitHubTokenPool(["first", "second"])
        client = GitHubClient(token_pool=pool, transport=recorder.transport)

        workflows = await client.list_workflows("acme", "api")
        await client.close()

        self.assertEqual(workflows, [{"id": 1, "name": "SDK"}])
        self.assertEqual(
            [r.headers["Authorization"] for r in recorder.requests],
            ["Bearer first", "Bearer second"],
        )

    async def test_token_provider_is_consulted_per_request(self):
        tokens = iter(["one", "two"])

        async def provider():
            return next(tokens)

        recorder = RecordingTransport(lambda request: httpx.Response(200, json={"sha": "abc"}))
        client = GitHubClient(token_provider=provider, transport=recorder.transport)

        await client.get_commit("acme", "api", "main")
        await client.get_commit("acme", "api", "main")
        await client.close()

        self.assertEqual(
            [r.headers["Authorization"] for r in recorder.requests],
            ["Bearer one", "Bearer two"],
        )


class TestGitHubTokenPool(unittest.TestCase):
    def test_requires_tokens(self):
        with self.assertRaises(GithubConfigurationError):
            GitHubTokenPool(["", "  "])

    def test_all_tokens_limited(self):
        pool = GitHubTokenPool(["a"])
        pool.mark_rate_limited("a", "4102444800")

        with self.assertRaises(GithubAllRateLimitError):
            pool.acquire_token()


if __name__ == "__main__":
    unittest.main()

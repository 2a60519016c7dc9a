import base64
import unittest
from unittest.mock import AsyncMock, MagicMock

from workflow_dispatcher.actions import fetch_generators
from workflow_dispatcher.github_exceptions import GithubApiError


def blob(text: str) -> dict:
    return {"content": base64.b64encode(text.encode("utf-8")).decode("ascii"), "encoding": "base64"}


class TestFetchGenerators(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.client = MagicMock()
        self.client.get_commit = AsyncMock(return_value={"sha": "c0ffee"})
        self.client.get_tree = AsyncMock(
            return_value={
                "tree": [
                    {"path": "fern/generators.yml", "type": "blob", "sha": "b1"},
                    {"path": "fern/apis/v2/generators.yml", "type": "blob", "sha": "b2"},
                    {"path": "fern/broken/generators.yml", "type": "blob", "sha": "b3"},
                    {"path": "docs/generators.yml", "type": "blob", "sha": "b4"},
                    {"path": "fern/generators.yml.d", "type": "tree", "sha": "t1"},
                ]
            }
        )
        blobs = {
            "b1": blob("default-group: local\ngroups:\n  local:\n    generators: []\n"),
            "b2": blob("api:\n  path: openapi.yml\n"),
            "b3": blob("groups: [unclosed\n"),
        }
        self.client.get_blob = AsyncMock(side_effect=lambda owner, repo, sha: blobs[sha])

    async def test_parses_generators_under_fern(self):
        generators = await fetch_generators(self.client, "acme", "api", "v1.2.0")

        self.assertEqual(
            [g["filepath"] for g in generators],
            ["fern/generators.yml", "fern/apis/v2/generators.yml"],
        )
        self.assertEqual(generators[0]["default-group"], "local")
        self.assertEqual(generators[1]["api"], {"path": "openapi.yml"})
        self.client.get_commit.assert_awaited_once_with("acme", "api", "v1.2.0")
        self.client.get_tree.assert_awaited_once_with("acme", "api", "c0ffee", recursive=True)

    async def test_ref_defaults_to_main(self):
        await fetch_generators(self.client, "acme", "api")

        self.client.get_commit.assert_awaited_once_with("acme", "api", "main")

    async def test_unresolvable_ref_propagates(self):
        self.client.get_commit = AsyncMock(side_effect=GithubApiError("No commit found", 422))

        with self.assertRaises(GithubApiError):
            await fetch_generators(self.client, "acme", "api", "missing")


if __name__ == "__main__":
    unittest.main()

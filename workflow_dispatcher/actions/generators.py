"""Collect the ``generators.yml`` files a repository keeps under ``fern/``."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Dict, List

import yaml

from workflow_dispatcher.github_client import GitHubClient
from workflow_dispatcher.github_exceptions import GithubApiError

logger = logging.getLogger(__name__)

GENERATORS_DIR = "fern/"
GENERATORS_FILENAME = "generators.yml"


def _is_generators_file(item: Dict[str, Any]) -> bool:
    path = item.get("path") or ""
    return (
        item.get("type") == "blob"
        and path.startswith(GENERATORS_DIR)
        and path.endswith(GENERATORS_FILENAME)
    )


def _decode_blob(blob: Dict[str, Any]) -> str:
    content = blob.get("content") or ""
    return base64.b64decode(content).decode("utf-8")


async def fetch_generators(
    client: GitHubClient, owner: str, repo: str, ref: str = "main"
) -> List[Dict[str, Any]]:
    """
    Fetch and parse every generators file at ``ref``.

    Each returned mapping is the parsed YAML with a ``filepath`` key added.
    Files that cannot be decoded or parsed are skipped.
    """
    logger.info(f"Fetching generators.yml files from {owner}/{repo} at ref: {ref}")

    try:
        commit = await client.get_commit(owner, repo, ref)
        commit_sha = commit["sha"]
        logger.debug(f"Resolved ref {ref} to commit {commit_sha}")
        tree = await client.get_tree(owner, repo, commit_sha, recursive=True)
    except GithubApiError as exc:
        logger.error(
            f"Error fetching generators! Status: {exc.status_code}. Message: {exc.message}"
        )
        raise

    files = [item for item in tree.get("tree", []) if _is_generators_file(item)]
    logger.info(f"Found {len(files)} generators.yml file(s) in fern/ directory")

    generators: List[Dict[str, Any]] = []
    for item in files:
        path, sha = item.get("path"), item.get("sha")
        if not sha:
            continue
        try:
            blob = await client.get_blob(owner, repo, sha)
            parsed = yaml.safe_load(_decode_blob(blob))
        except (GithubApiError, yaml.YAMLError, binascii.Error, UnicodeDecodeError) as exc:
            logger.error(f"Error parsing {path}: {exc}")
            continue

        if parsed is None:
            parsed = {}
        if not isinstance(parsed, dict):
            logger.error(f"Error parsing {path}: expected a mapping, got {type(parsed).__name__}")
            continue
        generators.append({"filepath": path, **parsed})
        logger.debug(f"Successfully parsed {path}")

    logger.info(f"Successfully parsed {len(generators)} generators.yml file(s)")
    return generators

"""Async GitHub REST client with token pooling and rate-limit handling."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol

import httpx
from pydantic import BaseModel

from .github_exceptions import (
    GithubAllRateLimitError,
    GithubApiError,
    GithubConfigurationError,
    GithubRateLimitError,
)

API_PREVIEW_HEADERS = {
    "Accept": "application/vnd.github+json",
    "X-GitHub-Api-Version": "2022-11-28",
}

TokenProvider = Callable[[], Awaitable[str]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowRunSnapshot(BaseModel):
    """The subset of a GitHub workflow run the lifecycle cares about."""

    id: int
    name: Optional[str] = None
    workflow_id: Optional[int] = None
    status: Optional[str] = None
    conclusion: Optional[str] = None
    head_sha: Optional[str] = None
    head_branch: Optional[str] = None
    event: Optional[str] = None
    run_started_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WorkflowControlApi(Protocol):
    """Operations needed to dispatch workflows and follow their runs."""

    async def dispatch_workflow(
        self,
        owner: str,
        repo: str,
        workflow_id: int | str,
        ref: str,
        inputs: Mapping[str, str],
    ) -> None:
        ...

    async def list_workflow_runs(
        self,
        owner: str,
        repo: str,
        workflow_id: int | str,
        per_page: int = 5,
    ) -> List[WorkflowRunSnapshot]:
        ...


class GitHubTokenPool:
    """
    Simple rotating token pool that respects cooldowns after rate limits.
    """

    def __init__(self, tokens: List[str]):
        normalized = [token.strip() for token in tokens if token and token.strip()]
        if not normalized:
            raise GithubConfigurationError("No GitHub tokens configured for pool")
        self._tokens = normalized
        self._index = 0
        self._lock = Lock()
        self._cooldowns: Dict[str, datetime] = {}

    @property
    def snapshot(self) -> tuple:
        return tuple(self._tokens)

    def acquire_token(self) -> str:
        now = _now()
        with self._lock:
            total = len(self._tokens)
            cooldown_until = None
            for _ in range(total):
                token = self._tokens[self._index]
                self._index = (self._index + 1) % total
                cooldown_until = self._cooldowns.get(token)
                if cooldown_until and cooldown_until > now:
                    continue
                return token
        raise GithubAllRateLimitError(
            "All GitHub tokens hit rate limits. Please wait before retrying.",
            retry_after=cooldown_until,
        )

    def mark_rate_limited(self, token: str, reset_epoch: Optional[str]) -> None:
        cooldown = _now() + timedelta(minutes=2)
        if reset_epoch:
            try:
                cooldown = datetime.fromtimestamp(int(reset_epoch), tz=timezone.utc)
            except (TypeError, ValueError):
                pass
        with self._lock:
            self._cooldowns[token] = cooldown


class GitHubClient:
    def __init__(
        self,
        token: str | None = None,
        token_pool: GitHubTokenPool | None = None,
        token_provider: TokenProvider | None = None,
        api_url: str = "https://api.github.com",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token_pool = token_pool
        self._token_provider = token_provider
        self._token = token or (token_pool.acquire_token() if token_pool else None)
        if not self._token and not token_provider:
            raise GithubConfigurationError("GitHub token is required to call the API")
        self._api_url = api_url.rstrip("/")
        if transport is None:
            transport = httpx.AsyncHTTPTransport(retries=3)
        self._rest = httpx.AsyncClient(base_url=self._api_url, timeout=30, transport=transport)

    async def _headers(self) -> Dict[str, str]:
        if self._token_provider is not None:
            self._token = await self._token_provider()
        headers = {"Authorization": f"Bearer {self._token}"}
        headers.update(API_PREVIEW_HEADERS)
        return headers

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        if response.status_code in {403, 429} and "rate limit" in response.text.lower():
            self._handle_rate_limit(response)
        if response.is_error:
            raise GithubApiError(_error_message(response), status_code=response.status_code)
        return response

    def _handle_rate_limit(self, response: httpx.Response) -> None:
        reset_header = response.headers.get("X-RateLimit-Reset")
        retry_after_header = response.headers.get("Retry-After")
        wait_seconds = 60.0

        if retry_after_header:
            try:
                wait_seconds = float(retry_after_header)
            except ValueError:
                pass
        elif reset_header:
            try:
                reset_epoch = float(reset_header)
                wait_seconds = max(reset_epoch - _now().timestamp(), 1.0)
            except ValueError:
                pass

        if self._token_pool and self._token:
            self._token_pool.mark_rate_limited(self._token, reset_epoch=reset_header)

        raise GithubRateLimitError("GitHub rate limit reached", retry_after=wait_seconds)

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        while True:
            response = await self._rest.request(
                method, path, headers=await self._headers(), **kwargs
            )
            try:
                return self._handle_response(response)
            except GithubRateLimitError:
                if not self._token_pool:
                    raise
                self._token = self._token_pool.acquire_token()

    async def _rest_request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._request(method, path, **kwargs)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # Actions endpoints
    async def list_workflows(self, owner: str, repo: str) -> List[Dict[str, Any]]:
        data = await self._rest_request(
            "GET", f"/repos/{owner}/{repo}/actions/workflows", params={"per_page": 100}
        )
        return data.get("workflows", []) if isinstance(data, dict) else []

    async def dispatch_workflow(
        self,
        owner: str,
        repo: str,
        workflow_id: int | str,
        ref: str,
        inputs: Mapping[str, str],
    ) -> None:
        await self._rest_request(
            "POST",
            f"/repos/{owner}/{repo}/actions/workflows/{workflow_id}/dispatches",
            json={"ref": ref, "inputs": dict(inputs)},
        )

    async def list_workflow_runs(
        self,
        owner: str,
        repo: str,
        workflow_id: int | str,
        per_page: int = 5,
    ) -> List[WorkflowRunSnapshot]:
        data = await self._rest_request(
            "GET",
            f"/repos/{owner}/{repo}/actions/workflows/{workflow_id}/runs",
            params={"per_page": per_page},
        )
        runs = data.get("workflow_runs", []) if isinstance(data, dict) else []
        return [WorkflowRunSnapshot.model_validate(run) for run in runs]

    # Git data endpoints
    async def get_commit(self, owner: str, repo: str, ref: str) -> Dict[str, Any]:
        return await self._rest_request("GET", f"/repos/{owner}/{repo}/commits/{ref}")

    async def get_tree(self, owner: str, repo: str, tree_sha: str, recursive: bool = True) -> Dict[str, Any]:
        params = {"recursive": "true"} if recursive else None
        return await self._rest_request(
            "GET", f"/repos/{owner}/{repo}/git/trees/{tree_sha}", params=params
        )

    async def get_blob(self, owner: str, repo: str, file_sha: str) -> Dict[str, Any]:
        return await self._rest_request("GET", f"/repos/{owner}/{repo}/git/blobs/{file_sha}")

    async def close(self) -> None:
        await self._rest.aclose()


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.text or response.reason_phrase

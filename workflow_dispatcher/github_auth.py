"""GitHub App authentication and client wiring."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Optional, Tuple

import httpx
from jose import jwt

from .config import Settings
from .github_client import GitHubClient, GitHubTokenPool
from .github_exceptions import GithubApiError, GithubConfigurationError

logger = logging.getLogger(__name__)

# Installation tokens are refreshed this long before GitHub expires them.
_TOKEN_REFRESH_MARGIN = timedelta(seconds=60)


def load_private_key(raw: str) -> str:
    """Load private key from string or file path."""
    if "PRIVATE KEY" in raw:
        return raw.replace("\\n", "\n")
    path = Path(raw.strip().strip('"'))
    if path.exists():
        return path.read_text()
    raise GithubConfigurationError(
        "GITHUB_APP_PRIVATE_KEY must be a PEM string or path to a private key file",
    )


def generate_jwt(app_id: str, private_key: str) -> str:
    """Generate a JWT for GitHub App authentication."""
    now = int(time.time())
    payload = {
        "iat": now - 60,
        "exp": now + 600,
        "iss": app_id,
    }
    pem = load_private_key(private_key)
    return jwt.encode(payload, pem, algorithm="RS256")


async def request_installation_token(
    http: httpx.AsyncClient, jwt_token: str, installation_id: str
) -> Tuple[str, datetime]:
    """Request an installation access token from GitHub."""
    headers = {
        "Authorization": f"Bearer {jwt_token}",
        "Accept": "application/vnd.github+json",
    }
    response = await http.post(
        f"/app/installations/{installation_id}/access_tokens", headers=headers
    )
    if response.is_error:
        raise GithubApiError(
            f"Failed to create installation token for {installation_id}: {response.text}",
            status_code=response.status_code,
        )
    data = response.json()
    token = data.get("token")
    expires_at_raw = data.get("expires_at")
    if not token or not expires_at_raw:
        raise GithubConfigurationError(
            "GitHub installation token response missing token or expires_at"
        )
    expires_at = datetime.fromisoformat(expires_at_raw.replace("Z", "+00:00"))
    return token, expires_at


class InstallationTokenCache:
    """In-process cache of installation tokens keyed by installation id."""

    def __init__(
        self,
        app_id: str,
        private_key: str,
        api_url: str = "https://api.github.com",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._app_id = app_id
        self._private_key = private_key
        self._http = httpx.AsyncClient(
            base_url=api_url.rstrip("/"), timeout=15, transport=transport
        )
        self._tokens: Dict[str, Tuple[str, datetime]] = {}
        self._lock = asyncio.Lock()

    async def get_token(self, installation_id: str) -> str:
        if not installation_id:
            raise GithubConfigurationError(
                "Installation id is required to generate a GitHub App token"
            )
        async with self._lock:
            cached = self._tokens.get(installation_id)
            if cached and cached[1] - _TOKEN_REFRESH_MARGIN > datetime.now(timezone.utc):
                return cached[0]
            jwt_token = generate_jwt(self._app_id, self._private_key)
            token, expires_at = await request_installation_token(
                self._http, jwt_token, installation_id
            )
            self._tokens[installation_id] = (token, expires_at)
            logger.debug("Issued installation token for %s", installation_id)
            return token

    def clear(self, installation_id: str) -> None:
        self._tokens.pop(installation_id, None)

    async def close(self) -> None:
        await self._http.aclose()


class GitHubClientFactory:
    """
    Hands out GitHub clients: one per installation when running as a GitHub
    App, otherwise a single client backed by the static token pool.
    """

    def __init__(self, settings: Settings) -> None:
        self._api_url = settings.GITHUB_API_URL
        self._token_cache: Optional[InstallationTokenCache] = None
        if settings.github_app_configured:
            self._token_cache = InstallationTokenCache(
                app_id=settings.GITHUB_APP_ID,
                private_key=settings.GITHUB_APP_PRIVATE_KEY,
                api_url=settings.GITHUB_API_URL,
            )
        self._tokens = [t for t in settings.GITHUB_TOKENS if t and t.strip()]
        self._clients: Dict[str, GitHubClient] = {}

    def client_for(self, installation_id: str | int | None = None) -> GitHubClient:
        if self._token_cache is not None and installation_id:
            key = str(installation_id)
            if key not in self._clients:
                cache = self._token_cache

                async def _provider() -> str:
                    return await cache.get_token(key)

                self._clients[key] = GitHubClient(
                    token_provider=_provider, api_url=self._api_url
                )
            return self._clients[key]

        if not self._tokens:
            raise GithubConfigurationError(
                "No GitHub App installation or GITHUB_TOKENS available for API calls"
            )
        if "__pool__" not in self._clients:
            if len(self._tokens) == 1:
                client = GitHubClient(token=self._tokens[0], api_url=self._api_url)
            else:
                client = GitHubClient(
                    token_pool=GitHubTokenPool(self._tokens), api_url=self._api_url
                )
            self._clients["__pool__"] = client
        return self._clients["__pool__"]

    async def forget_installation(self, installation_id: str | int) -> None:
        """Drop cached credentials when an installation is removed or suspended."""
        key = str(installation_id)
        if self._token_cache is not None:
            self._token_cache.clear(key)
        client = self._clients.pop(key, None)
        if client is not None:
            await client.close()
            logger.info("Discarded GitHub client for installation %s", key)

    async def close(self) -> None:
        for client in list(self._clients.values()):
            await client.close()
        self._clients.clear()
        if self._token_cache is not None:
            await self._token_cache.close()

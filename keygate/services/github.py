# =============================================================================
# GitHub OAuth Client
# =============================================================================
#
# Three HTTP calls, in order:
#   1. POST https://github.com/login/oauth/access_token  (code → token)
#   2. GET  https://api.github.com/user                  (profile)
#   3. GET  https://api.github.com/user/emails           (only when the
#      profile email is private; the primary *verified* address is used)
#
# The raw JSON never leaves this module: callers get a GitHubIdentity.
#
# DESIGN DECISION: An httpx.AsyncClient can be injected. Production passes
# nothing and a short-lived client is opened per login; tests pass a client
# built on httpx.MockTransport so no network is touched.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

from keygate.config import Settings

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
TOKEN_URL = "https://github.com/login/oauth/access_token"
API_BASE_URL = "https://api.github.com"
OAUTH_SCOPE = "read:user user:email"


class GitHubOAuthError(Exception):
    """The login could not be completed (bad code, no verified email, GitHub down)."""


@dataclass(frozen=True)
class GitHubIdentity:
    github_id: str
    login: str
    name: str | None
    email: str


class GitHubOAuthClient:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        callback_url: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
    ):
        self.client_id = client_id
        self._client_secret = client_secret
        self.callback_url = callback_url
        self._http_client = http_client
        self._timeout = timeout

    @classmethod
    def from_settings(
        cls, settings: Settings, http_client: httpx.AsyncClient | None = None,
    ) -> GitHubOAuthClient | None:
        """None when GitHub login is not configured."""
        if not settings.github_client_id:
            return None
        return cls(
            settings.github_client_id,
            settings.github_client_secret,
            settings.github_callback_url,
            http_client=http_client,
            timeout=settings.github_timeout_seconds,
        )

    def authorize_url(self, state: str | None = None) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.callback_url,
            "scope": OAUTH_SCOPE,
        }
        if state:
            params["state"] = state
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    async def authenticate(self, code: str) -> GitHubIdentity:
        """Exchange an authorization code and resolve the GitHub identity."""
        if self._http_client is not None:
            return await self._authenticate(self._http_client, code)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await self._authenticate(client, code)

    async def _authenticate(
        self, client: httpx.AsyncClient, code: str,
    ) -> GitHubIdentity:
        try:
            token = await self.exchange_code(client, code)
            return await self.fetch_identity(client, token)
        except httpx.HTTPError as e:
            logger.error("GitHub OAuth request failed: %s", e)
            raise GitHubOAuthError("GitHub is unreachable") from e

    async def exchange_code(self, client: httpx.AsyncClient, code: str) -> str:
        response = await client.post(
            TOKEN_URL,
            json={
                "client_id": self.client_id,
                "client_secret": self._client_secret,
                "code": code,
            },
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()
        data = response.json()
        if data.get("error") or not data.get("access_token"):
            logger.warning(
                "GitHub token exchange rejected: %s", data.get("error", "no token"),
            )
            raise GitHubOAuthError("Failed to get access token from GitHub")
        return data["access_token"]

    async def fetch_identity(
        self, client: httpx.AsyncClient, access_token: str,
    ) -> GitHubIdentity:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/vnd.github+json",
            "User-Agent": "keygate",
        }
        response = await client.get(f"{API_BASE_URL}/user", headers=headers)
        response.raise_for_status()
        profile = response.json()

        email = profile.get("email")
        if not email:
            response = await client.get(f"{API_BASE_URL}/user/emails", headers=headers)
            response.raise_for_status()
            email = next(
                (
                    e["email"] for e in response.json()
                    if e.get("primary") and e.get("verified")
                ),
                None,
            )
        if not email:
            raise GitHubOAuthError("GitHub account must have a verified email")

        return GitHubIdentity(
            github_id=str(profile["id"]),
            login=profile["login"],
            name=profile.get("name"),
            email=email,
        )

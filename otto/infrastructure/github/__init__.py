"""
GitHub Infrastructure
=====================

GitHub REST API client used as the on-call notifier.

Authenticates as a GitHub App installation: an RS256 app JWT is
exchanged for an installation token, which is cached until shortly
before it expires. Without app credentials requests go out
unauthenticated.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Dict, Optional

import httpx
import jwt

from otto.config import Settings, settings as default_settings
from otto.core import GitHubException
from otto.oncall.application import INotifier
from otto.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

# Refresh the installation token this long before GitHub expires it.
TOKEN_REFRESH_MARGIN_SECONDS = 60
# GitHub rejects app JWTs valid for more than ten minutes.
APP_JWT_TTL_SECONDS = 540


class GitHubClient(INotifier):
    """
    Async GitHub client.

    Example:
        client = GitHubClient()
        await client.post_comment("acme/repo", 42, "Hello")
        await client.close()
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self._settings = config or default_settings
        self._http_client = http_client
        self._private_key = self._settings.load_github_private_key()
        self._token: Optional[str] = None
        self._token_expires_at: float = 0.0
        self._token_lock = asyncio.Lock()

        if not self.has_app_credentials:
            logger.warning("GitHub App credentials not configured, API calls are unauthenticated")

    @property
    def has_app_credentials(self) -> bool:
        return bool(
            self._settings.github_app_id
            and self._settings.github_installation_id
            and self._private_key
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self._settings.github_api_url,
                timeout=self._settings.github_timeout_seconds,
                headers={
                    "Accept": "application/vnd.github+json",
                    "X-GitHub-Api-Version": "2022-11-28",
                    "User-Agent": self._settings.app_name,
                }
            )
        return self._http_client

    def _app_jwt(self) -> str:
        now = int(time.time())
        payload = {
            "iat": now - 60,  # tolerate clock drift
            "exp": now + APP_JWT_TTL_SECONDS,
            "iss": str(self._settings.github_app_id),
        }
        try:
            return jwt.encode(payload, self._private_key, algorithm="RS256")
        except (jwt.PyJWTError, ValueError) as e:
            raise GitHubException("Could not sign app JWT", {"error": str(e)}) from e

    async def refresh_credentials(self) -> None:
        """
        Exchange a fresh app JWT for an installation token.

        Raises:
            GitHubException: Credentials missing or rejected
        """
        if not self.has_app_credentials:
            raise GitHubException("GitHub App credentials are not configured")

        client = await self._get_client()
        url = f"/app/installations/{self._settings.github_installation_id}/access_tokens"

        try:
            response = await client.post(url, headers={"Authorization": f"Bearer {self._app_jwt()}"})
        except httpx.HTTPError as e:
            raise GitHubException("Installation token request failed", {"error": str(e)}) from e

        if response.status_code != 201:
            raise GitHubException(
                "Installation token request rejected",
                {"status_code": response.status_code}
            )

        data = response.json()
        self._token = data["token"]
        self._token_expires_at = self._parse_expiry(data.get("expires_at"))
        logger.info("GitHub installation token refreshed")

    @staticmethod
    def _parse_expiry(value: Optional[str]) -> float:
        if not value:
            return time.time() + 3600
        return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone(timezone.utc).timestamp()

    async def _auth_headers(self) -> Dict[str, str]:
        if not self.has_app_credentials:
            return {}

        async with self._token_lock:
            if self._token is None or time.time() >= self._token_expires_at - TOKEN_REFRESH_MARGIN_SECONDS:
                await self.refresh_credentials()
        return {"Authorization": f"token {self._token}"}

    async def verify_credentials(self) -> bool:
        """Check that GitHub accepts our credentials."""
        if not self.has_app_credentials:
            return False

        try:
            client = await self._get_client()
            response = await client.get("/app", headers={"Authorization": f"Bearer {self._app_jwt()}"})
            if response.status_code != 200:
                logger.warning("GitHub App credentials rejected", extra={"status_code": response.status_code})
                return False
            await self.refresh_credentials()
            return True
        except (httpx.HTTPError, GitHubException) as e:
            logger.warning("GitHub credential check failed", extra={"error": str(e)})
            return False

    async def post_comment(self, repository: str, number: int, body: str) -> None:
        """Post a comment on an issue or pull request."""
        client = await self._get_client()
        url = f"/repos/{repository}/issues/{number}/comments"

        try:
            response = await client.post(url, json={"body": body}, headers=await self._auth_headers())
        except httpx.HTTPError as e:
            raise GitHubException(
                "Comment request failed",
                {"repository": repository, "number": number, "error": str(e)}
            ) from e

        if response.status_code != 201:
            raise GitHubException(
                "Comment was not created",
                {"repository": repository, "number": number, "status_code": response.status_code}
            )

        logger.info("GitHub comment posted", extra={"repository": repository, "number": number})

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

"""
OAuth login helpers for Google and GitHub.

Google: the frontend has already completed the OAuth dance and posts the
verified profile (email + googleId); the backend links or creates the user.

GitHub: the frontend may post the profile fields and/or a GitHub access
token. With a token the backend asks the GitHub API for the profile and,
when no email was supplied, for the account's email addresses. GitHub being
slow or unreachable only means "no profile"; an explicit rejection of the
token (non-2xx) means the token is bad.
"""
import logging
from typing import Optional, List, Dict, Any

import httpx
from fastapi import Request
from sqlalchemy.orm import Session

from authserver.config import Settings
from authserver.core.exceptions import AuthError, InputError
from authserver.models.user import User
from authserver.services.auth_service import find_or_create_oauth_user

logger = logging.getLogger(__name__)

GITHUB_PROVIDER = "github"
GOOGLE_PROVIDER = "google"


class GitHubClient:
    """Thin async wrapper around the two GitHub REST endpoints we need."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = settings.github_api_url
        self.timeout = settings.github_timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
                headers={
                    "User-Agent": "authentication_hybrid",
                    "Accept": "application/vnd.github+json",
                },
            )

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get(self, path: str, access_token: str) -> httpx.Response:
        await self.connect()
        return await self._client.get(path, headers={"Authorization": f"Bearer {access_token}"})

    async def fetch_profile(self, access_token: str) -> Optional[Dict[str, Any]]:
        """
        Returns the /user payload, or None when GitHub could not be reached.
        Raises AuthError when GitHub rejects the token.
        """
        try:
            response = await self._get("/user", access_token)
        except httpx.HTTPError as e:
            logger.error(f"GitHub profile request failed: {e}")
            return None

        if not response.is_success:
            raise AuthError("Invalid GitHub access token")
        return response.json()

    async def fetch_email(self, access_token: str) -> Optional[str]:
        """Primary+verified address, else any verified one, else the first listed."""
        try:
            response = await self._get("/user/emails", access_token)
        except httpx.HTTPError as e:
            logger.error(f"GitHub emails request failed: {e}")
            return None

        if not response.is_success:
            return None

        emails: List[Dict[str, Any]] = response.json() or []
        chosen = (
            next((e for e in emails if e.get("primary") and e.get("verified")), None)
            or next((e for e in emails if e.get("verified")), None)
            or (emails[0] if emails else None)
        )
        if chosen and chosen.get("email"):
            return chosen["email"].lower()
        return None


def login_with_google(
    db: Session,
    email: Optional[str],
    google_id: Optional[str],
    name: Optional[str] = None,
    image: Optional[str] = None,
) -> User:
    if not email or not google_id:
        raise InputError("Email and Google ID are required")

    return find_or_create_oauth_user(
        db,
        provider=GOOGLE_PROVIDER,
        provider_account_id=str(google_id),
        email=email,
        name=name,
        avatar_url=image,
    )


async def login_with_github(
    db: Session,
    github: GitHubClient,
    email: Optional[str] = None,
    name: Optional[str] = None,
    github_id: Optional[str] = None,
    image: Optional[str] = None,
    access_token: Optional[str] = None,
) -> User:
    if not github_id and not access_token:
        raise InputError("GitHub ID or access token is required")

    email = email.lower() if email else None
    profile: Optional[Dict[str, Any]] = None

    if access_token:
        profile = await github.fetch_profile(access_token)
        if not email:
            email = await github.fetch_email(access_token)

    if not email:
        raise InputError(
            "Email is required for GitHub authentication. "
            "Please ensure you've granted email access permissions."
        )

    provider_account_id = github_id or (profile or {}).get("id")
    if not provider_account_id:
        raise InputError("GitHub account id could not be determined")

    profile = profile or {}
    return find_or_create_oauth_user(
        db,
        provider=GITHUB_PROVIDER,
        provider_account_id=str(provider_account_id),
        email=email,
        name=name or profile.get("name") or profile.get("login") or "GitHub User",
        avatar_url=image or profile.get("avatar_url"),
    )


def get_github_client(request: Request) -> GitHubClient:
    return request.app.state.github_client

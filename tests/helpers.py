"""
Shared test setup.

Importing this module configures the environment BEFORE anything from
authserver is imported: settings are read once and cached at import time.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DB_AUTO_CREATE"] = "true"
os.environ["JWT_SECRET"] = "test-access-secret-0123456789abcdef0123"
os.environ["SESSION_SECRET"] = "test-session-secret-0123456789abcdef012"
os.environ["BCRYPT_SALT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "development"
os.environ.pop("SMTP_HOST", None)

from typing import Dict, List, Optional
from urllib.parse import parse_qs, urlparse

import httpx

from authserver.config import settings
from authserver.core.exceptions import EmailDeliveryError
from authserver.database import Database
from authserver.main import create_app
from authserver.models.user import User
from authserver.core.security import hash_secret
from authserver.services.email_service import EmailService, get_email_service
from authserver.services.oauth_service import GitHubClient

PASSWORD = "Sup3r-secret-pw"


class RecordingEmailService(EmailService):
    """Keeps every message in memory instead of talking to SMTP."""

    def __init__(self, fail: bool = False):
        super().__init__(settings)
        self.fail = fail
        self.sent: List[Dict[str, str]] = []
        self.otps: Dict[str, str] = {}
        self.reset_urls: Dict[str, str] = {}

    async def _deliver(self, recipient: str, subject: str, body: str, dev_log: str) -> None:
        if self.fail:
            raise EmailDeliveryError()
        self.sent.append({"to": recipient, "subject": subject, "body": body})

    async def send_otp_email(self, email: str, otp: str, name: Optional[str] = None) -> None:
        await super().send_otp_email(email, otp, name)
        self.otps[email] = otp

    async def send_password_reset_email(self, email, reset_url, name=None, ttl_minutes=None) -> None:
        await super().send_password_reset_email(email, reset_url, name, ttl_minutes)
        self.reset_urls[email] = reset_url

    def reset_token_for(self, email: str) -> str:
        query = parse_qs(urlparse(self.reset_urls[email]).query)
        return query["token"][0]


def github_transport(profiles: Dict[str, dict], emails: Optional[Dict[str, list]] = None) -> httpx.MockTransport:
    """
    Fake GitHub API keyed by access token. Unknown tokens get a 401,
    the token "down" simulates GitHub being unreachable.
    """
    emails = emails or {}

    def handler(request: httpx.Request) -> httpx.Response:
        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        if token == "down":
            raise httpx.ConnectError("unreachable", request=request)
        if token not in profiles:
            return httpx.Response(401, json={"message": "Bad credentials"})
        if request.url.path == "/user":
            return httpx.Response(200, json=profiles[token])
        if request.url.path == "/user/emails":
            return httpx.Response(200, json=emails.get(token, []))
        return httpx.Response(404)

    return httpx.MockTransport(handler)


def build_app(mailer: Optional[RecordingEmailService] = None, transport: Optional[httpx.MockTransport] = None):
    mailer = mailer or RecordingEmailService()
    github = GitHubClient(settings, transport=transport or github_transport({}))
    app = create_app(email_service=mailer, github_client=github)
    app.dependency_overrides[get_email_service] = lambda: mailer
    return app, mailer


def open_database() -> Database:
    """Fresh in-memory database with every table created."""
    db = Database("sqlite://")
    db.init()
    db.create_all()
    return db


def make_user(session, email: str = "user@example.com", verified: bool = True, password: str = PASSWORD) -> User:
    user = User(email=email, name="Test User", password_hash=hash_secret(password), is_email_verified=verified)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user

# models/__init__.py
# Import all models here so that:
# 1. Alembic's env.py can import this single module and detect all tables.
# 2. SQLAlchemy relationship() calls resolve correctly (all classes in same metadata).

from authserver.models.user import User, Account
from authserver.models.refresh_token import RefreshToken
from authserver.models.otp import EmailOTP
from authserver.models.password_reset import PasswordReset

__all__ = [
    "User",
    "Account",
    "RefreshToken",
    "EmailOTP",
    "PasswordReset",
]

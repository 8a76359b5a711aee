"""
Centralised application errors.

Every error a service can raise lives here as a subclass of AppError. Services
raise them without knowing about HTTP; the handlers registered in main.py map
them once to a flat {"error": detail} JSON body with the class's status code.
"""
from fastapi import status


class AppError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: str = "Internal server error"

    def __init__(self, detail: str = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


# ── Taxonomy ──────────────────────────────────────────────────────────────────

class InputError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Invalid request"


class AuthError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Could not validate credentials"


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    detail = "You do not have permission to perform this action"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str = "Resource", detail: str = None):
        super().__init__(detail or f"{resource} not found")


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    detail = "Resource already exists"


class RateLimitError(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    detail = "Too many requests"


class UpstreamError(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    detail = "Upstream service unavailable"


class InternalError(AppError):
    pass


# ── Access tokens ─────────────────────────────────────────────────────────────

class AccessTokenExpiredError(AuthError):
    detail = "Access token expired"


class AccessTokenInvalidError(AuthError):
    detail = "Invalid access token"


# ── Refresh tokens ────────────────────────────────────────────────────────────

class RefreshTokenMissingError(AuthError):
    detail = "No refresh token"


class RefreshTokenInvalidError(AuthError):
    detail = "Invalid or expired refresh token"


# ── OTP ───────────────────────────────────────────────────────────────────────

class OTPExpiredOrInvalidError(InputError):
    detail = "Invalid or expired OTP!"


class InvalidOTPError(InputError):
    detail = "Invalid OTP!"


class OTPAttemptsExceededError(RateLimitError):
    detail = "Too many failed attempts. Request a new OTP."


# ── Password reset ────────────────────────────────────────────────────────────

class ResetTokenInvalidError(InputError):
    detail = "Invalid or expired token"


# ── Accounts ──────────────────────────────────────────────────────────────────

class EmailNotVerifiedError(ForbiddenError):
    detail = "Email not verified. Please verify your email first."


# ── Outbound channels ─────────────────────────────────────────────────────────

class EmailDeliveryError(UpstreamError):
    detail = "Failed to send email"

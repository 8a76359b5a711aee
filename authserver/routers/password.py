"""
Password router: reset-by-email.

  1. POST /api/password/request-password-reset → email a single-use link
     (always the same 200 answer, never reveals whether the email exists)
  2. POST /api/password/reset → consume the token and set the new password;
     every refresh token of the user is revoked
"""
from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from authserver.config import settings
from authserver.database import get_db
from authserver.core.dependencies import get_client_meta
from authserver.core.rate_limiter import limiter
from authserver.schemas.auth import ForgotPasswordRequest, ResetPasswordRequest, MessageResponse
from authserver.services import password_service
from authserver.services.email_service import EmailService, get_email_service, send_best_effort

router = APIRouter()

RESET_REQUESTED_MESSAGE = "If that email is registered, a reset link has been sent."


@router.post("/request-password-reset", response_model=MessageResponse)
@limiter.limit("3/minute")
async def request_password_reset(
    request: Request,
    body: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    mailer: EmailService = Depends(get_email_service),
):
    issued = password_service.request_password_reset(db, body.email, get_client_meta(request))
    if issued:
        user, raw_token = issued
        reset_url = password_service.build_reset_url(raw_token, user.email)
        display_name = (user.name or "").strip() or user.email.split("@")[0]

        background_tasks.add_task(
            send_best_effort,
            mailer.send_password_reset_email,
            user.email,
            reset_url,
            name=display_name,
            ttl_minutes=settings.reset_token_ttl_minutes,
        )

    return {"message": RESET_REQUESTED_MESSAGE}


@router.post("/reset", response_model=MessageResponse)
@limiter.limit("5/minute")
async def reset_password(
    request: Request,
    body: ResetPasswordRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    mailer: EmailService = Depends(get_email_service),
):
    user = password_service.reset_password(db, body.token, body.new_password)

    background_tasks.add_task(
        send_best_effort, mailer.send_password_change_confirmation_email, user.email, user.name
    )
    return {"message": "Password has been reset successfully. Please login with your new password."}

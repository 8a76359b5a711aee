"""
User router: credential registration, OTP email verification and login.

Registration flow:
  1. POST /api/user/register   → create user (unverified) + email a 6-digit OTP
  2. POST /api/user/verify-otp → verify OTP → mark email verified
     (POST /api/user/resend-otp revokes the old code and sends a new one)
  3. POST /api/user/login      → credentials → access token + refresh cookie

GET /api/user/me returns the user behind a bearer access token.
"""
from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from sqlalchemy.orm import Session

from authserver.database import get_db
from authserver.core.cookies import set_refresh_cookie
from authserver.core.dependencies import get_current_user, get_client_meta
from authserver.core.rate_limiter import limiter
from authserver.core.security import create_access_token
from authserver.core.session import set_session_cookie
from authserver.models.user import User
from authserver.schemas.auth import RegisterRequest, VerifyOTPRequest, ResendOTPRequest, LoginRequest, MessageResponse
from authserver.schemas.user import UserOut, RegisterResponse, RegisteredUser, AuthResponse
from authserver.services import auth_service, otp_service, token_service
from authserver.services.email_service import EmailService, get_email_service, send_best_effort

router = APIRouter()


@router.post("/register", response_model=RegisterResponse, status_code=201)
@limiter.limit("5/minute")
async def register(
    request: Request,
    body: RegisterRequest,
    db: Session = Depends(get_db),
    mailer: EmailService = Depends(get_email_service),
):
    """
    Creates an unverified account and emails the OTP.
    The OTP email is awaited: without it the account cannot be verified,
    so a send failure is reported as 500.
    """
    user = await auth_service.register_user(
        db,
        mailer,
        name=body.name,
        email=body.email,
        password=body.password,
    )
    return RegisterResponse(
        message="User registered successfully! Please check your email for the OTP.",
        user=RegisteredUser.model_validate(user),
    )


@router.post("/verify-otp", response_model=MessageResponse)
@limiter.limit("10/minute")
async def verify_otp(
    request: Request,
    body: VerifyOTPRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    mailer: EmailService = Depends(get_email_service),
):
    user = otp_service.verify_otp(db, email=body.email, user_id=body.user_id, otp=body.otp)

    background_tasks.add_task(
        send_best_effort, mailer.send_verification_success_email, user.email, user.name
    )
    return {"message": "Email verified successfully!"}


@router.post("/resend-otp", response_model=MessageResponse)
@limiter.limit("3/minute")
async def resend_otp(
    request: Request,
    body: ResendOTPRequest,
    db: Session = Depends(get_db),
    mailer: EmailService = Depends(get_email_service),
):
    await otp_service.resend_otp(db, mailer, email=body.email, user_id=body.user_id)
    return {"message": "New OTP sent successfully!"}


@router.post("/login", response_model=AuthResponse, response_model_exclude_none=True)
@limiter.limit("10/minute")
async def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    db: Session = Depends(get_db),
):
    """
    Login with email and password.
    The access token goes in the body; the refresh token only in the
    HTTP-only refreshToken cookie. An auth-session cookie is set alongside.
    """
    user = auth_service.authenticate_user(db, email=body.email, password=body.password)

    refresh_raw = token_service.issue_refresh_token(db, user, get_client_meta(request))
    access_token = create_access_token(user)

    set_session_cookie(response, user)
    set_refresh_cookie(response, refresh_raw)

    return AuthResponse(
        message="Login successful",
        access_token=access_token,
        user=UserOut.model_validate(user),
    )


@router.get("/me", response_model=UserOut)
def get_me(current_user: User = Depends(get_current_user)):
    """
    Return the authenticated user's profile.
    No DB call needed: get_current_user already fetched the user.
    """
    return current_user

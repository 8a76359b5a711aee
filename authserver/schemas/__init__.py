from authserver.schemas.auth import (
    RegisterRequest, VerifyOTPRequest, ResendOTPRequest, LoginRequest,
    GoogleAuthRequest, GitHubAuthRequest, ForgotPasswordRequest,
    ResetPasswordRequest, MessageResponse
)
from authserver.schemas.user import UserOut, RegisteredUser, RegisterResponse, AuthResponse, SessionResponse

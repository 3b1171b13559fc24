from app.schemas.auth import (
    SignupRequest, LoginRequest, VerifyOTPRequest, PasswordResetOTPRequest,
    PasswordResetVerifyRequest, ResetPasswordRequest, RefreshTokenRequest,
    UserSummary, AuthData, AuthResponse, TokenPair, TokenResponse,
    OTPVerificationResult, OTPVerificationResponse, MessageResponse,
)
from app.schemas.user import (
    UserOut, CurrentUserResponse, UserUpdateRequest, UserUpdateData, UserUpdateResponse,
)

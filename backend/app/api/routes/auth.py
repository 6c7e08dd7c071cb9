"""
Auth API Routes

Registration, login, profile, password management and admin unblock.
"""

import logging

from fastapi import APIRouter, status

from app.api.dependencies import AuthServiceDep, CurrentUser
from app.domain.models import (
    AuthResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenValidationResponse,
    UserEnvelope,
    UserResponse,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth")


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest, service: AuthServiceDep):
    """Create an account and return a bearer token."""
    return await service.register(request)


@router.post("/login", response_model=AuthResponse)
async def login(request: LoginRequest, service: AuthServiceDep):
    """
    Log in with email or phone.

    Answers 401 with the remaining attempts, or 403 once the account is locked.
    """
    return await service.login(request)


# =============================================================================
# Profile
# =============================================================================

@router.get("/profile", response_model=UserEnvelope)
async def get_profile(user: CurrentUser):
    return UserEnvelope(user=UserResponse.model_validate(user))


@router.put("/profile", response_model=UserEnvelope)
async def update_profile(request: ProfileUpdateRequest, user: CurrentUser, service: AuthServiceDep):
    updated = await service.update_profile(user, request)
    return UserEnvelope(user=UserResponse.model_validate(updated))


@router.put("/change-password", response_model=MessageResponse)
async def change_password(request: ChangePasswordRequest, user: CurrentUser, service: AuthServiceDep):
    await service.change_password(user, request)
    return MessageResponse(message="Password changed successfully")


@router.delete("/account", response_model=MessageResponse)
async def delete_account(user: CurrentUser, service: AuthServiceDep):
    await service.delete_account(user)
    return MessageResponse(message="Account deleted")


# =============================================================================
# Password reset
# =============================================================================

@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(request: ForgotPasswordRequest, service: AuthServiceDep):
    """Always answers with the same body, whether or not the account exists."""
    message = await service.forgot_password(request.email)
    return MessageResponse(message=message)


@router.get("/reset-password/{token}", response_model=TokenValidationResponse)
async def validate_reset_token(token: str, service: AuthServiceDep):
    """Check a reset token without consuming it."""
    await service.validate_reset_token(token)
    return TokenValidationResponse(valid=True)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(request: ResetPasswordRequest, service: AuthServiceDep):
    await service.reset_password(request)
    return MessageResponse(message="Password reset successfully")


# =============================================================================
# Admin
# =============================================================================

@router.post("/unblock/{user_id}", response_model=UserEnvelope)
async def unblock_user(user_id: int, caller: CurrentUser, service: AuthServiceDep):
    """Admin only: reactivate a locked account."""
    user = await service.unblock(caller.role, user_id)
    return UserEnvelope(user=UserResponse.model_validate(user))

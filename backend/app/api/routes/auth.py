"""Authentication routes."""

import logging

from fastapi import APIRouter, Request, status

from app.core.rate_limit import client_ip, limiter
from app.core.rbac import CurrentUser, RequireStaff, SettingsDep
from app.core.responses import envelope
from app.core.security import extract_bearer_token, password_strength
from app.db.session import DbSession
from app.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    PasswordStrengthRequest,
    RegisterRequest,
)
from app.services.user_service import UserService

logger = logging.getLogger("auth")

router = APIRouter()


@router.post("/login")
@limiter.limit("10/minute")
def login(request: Request, body: LoginRequest, db: DbSession, settings: SettingsDep):
    """Authenticate user and return a signed token plus a session token."""
    data = UserService(db, settings).login(
        body.email,
        body.password,
        ip_address=client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    return envelope(data, "Login successful")


@router.post("/register", status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
def register(request: Request, body: RegisterRequest, db: DbSession, settings: SettingsDep):
    """Create a customer account."""
    data = UserService(db, settings).register(
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        password=body.password,
        confirm_password=body.confirm_password,
        ip_address=client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    return envelope(data, "Registration successful! You can now log in.")


@router.post("/logout")
def logout(request: Request, db: DbSession, settings: SettingsDep):
    """End every session of the caller. Always reports success."""
    token = extract_bearer_token(request.headers.get("Authorization"))
    UserService(db, settings).logout(token, ip_address=client_ip(request))
    return envelope(None, "Logged out successfully")


@router.post("/validate-token")
def validate_token(request: Request, identity: CurrentUser, db: DbSession, settings: SettingsDep):
    data = UserService(db, settings).validate_token(identity, ip_address=client_ip(request))
    return envelope(data, "Token is valid")


@router.post("/validate-admin-token")
def validate_admin_token(request: Request, identity: RequireStaff, db: DbSession, settings: SettingsDep):
    """Like validate-token, but requires a staff role and adds role flags."""
    data = UserService(db, settings).validate_token(identity, staff_view=True, ip_address=client_ip(request))
    return envelope(data, "Admin token is valid")


@router.post("/change-password")
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    identity: CurrentUser,
    db: DbSession,
    settings: SettingsDep,
):
    UserService(db, settings).change_password(
        identity.user,
        body.current_password,
        body.new_password,
        ip_address=client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    return envelope(None, "Password changed successfully")


@router.post("/password-strength")
@limiter.limit("30/minute")
def check_password_strength(request: Request, body: PasswordStrengthRequest, settings: SettingsDep):
    """Advisory scoring with the same rules registration enforces."""
    strength = password_strength(body.password, settings.password_min_length)
    return envelope(
        {
            "score": strength.score,
            "acceptable": strength.acceptable,
            "missing": strength.missing,
            "label": strength.label,
        },
        "Password strength calculated",
    )

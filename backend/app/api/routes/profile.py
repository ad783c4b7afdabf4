"""Profile routes for the signed-in user."""

from fastapi import APIRouter, Request

from app.core.rate_limit import client_ip
from app.core.rbac import CurrentUser, SettingsDep
from app.core.responses import envelope
from app.db.session import DbSession
from app.schemas.user import ProfileUpdate
from app.services.user_service import UserService

router = APIRouter()


@router.get("")
def get_profile(identity: CurrentUser, db: DbSession, settings: SettingsDep):
    return envelope(UserService(db, settings).get_profile(identity.user), "Profile retrieved successfully")


@router.put("")
def update_profile(
    request: Request,
    body: ProfileUpdate,
    identity: CurrentUser,
    db: DbSession,
    settings: SettingsDep,
):
    data = UserService(db, settings).update_profile(
        identity.user,
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        phone=body.phone,
        company=body.company,
        job_title=body.job_title,
        bio=body.bio,
        ip_address=client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    return envelope(data, "Profile updated successfully")

"""
User Service

Account lifecycle: registration, login/logout, password change, profile
reads and updates, and the admin-side user list and activation toggle.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import case, delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    RateLimitedError,
    StorageError,
    ValidationError,
)
from app.core.rate_limit import LoginAttemptLimiter
from app.core.rbac import Identity
from app.core.rbac_policy import (
    DEFAULT_ROLE,
    ROLE_DESCRIPTIONS,
    ROLE_PERMISSIONS,
    RBACPolicy,
    RoleName,
)
from app.core.responses import format_datetime
from app.core.sanitize import sanitize_optional, sanitize_text
from app.core.security import (
    TokenCodec,
    TokenError,
    generate_session_token,
    get_password_hash,
    password_strength,
    verify_password,
)
from app.db.base import utcnow
from app.models.ticket import ACTIVE_STATUSES, RESOLVED_STATUSES, SupportTicket
from app.models.user import ACCOUNT_ACTIVE, ACCOUNT_INACTIVE, Role, User, UserSession
from app.services.audit_service import log_activity

logger = logging.getLogger("auth")

PASSWORD_POLICY_MESSAGE = (
    "Password must be at least {n} characters long and contain uppercase, "
    "lowercase, numbers, and special characters"
)
NEW_PASSWORD_POLICY_MESSAGE = "New password" + PASSWORD_POLICY_MESSAGE[len("Password"):]


def ensure_default_roles(db: Session) -> None:
    """Create any of the built-in roles that are missing. Idempotent."""
    existing = set(db.scalars(select(Role.name)).all())
    for role_name in RoleName:
        if role_name.value in existing:
            continue
        db.add(Role(
            name=role_name.value,
            description=ROLE_DESCRIPTIONS[role_name],
            permissions=sorted(p.value for p in ROLE_PERMISSIONS[role_name]),
        ))
    db.commit()


def get_role(db: Session, name: str) -> Role:
    role = db.scalars(select(Role).where(Role.name == name)).first()
    if role is None:
        ensure_default_roles(db)
        role = db.scalars(select(Role).where(Role.name == name)).one()
    return role


class UserService:
    """User directory operations bound to one request's session."""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.codec = TokenCodec.from_settings(settings)
        self.limiter = LoginAttemptLimiter.from_settings(db, settings)

    def _check_password_policy(self, password: str, message: str) -> None:
        strength = password_strength(password, self.settings.password_min_length)
        if not strength.acceptable:
            raise ValidationError(
                message.format(n=self.settings.password_min_length),
                data={"missing": strength.missing, "score": strength.score},
            )

    # ========== REGISTRATION / LOGIN ==========

    def register(
        self,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
        confirm_password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a customer account.

        Raises:
            ValidationError: mismatched confirmation, weak password or an
                email that is already registered.
            RateLimitedError: too many attempts from ``ip_address``.
        """
        if password != confirm_password:
            raise ValidationError("Passwords do not match")
        self._check_password_policy(password, PASSWORD_POLICY_MESSAGE)

        rate_key = ip_address or "unknown"
        if not self.limiter.allow(rate_key, "register"):
            raise RateLimitedError("Too many registration attempts. Please try again later.")

        if self.db.scalars(select(User.id).where(User.email == email)).first() is not None:
            self.limiter.record(rate_key, "register", success=False)
            raise ValidationError("Email address is already registered")

        verified = self.settings.auto_verify_email
        user = User(
            first_name=sanitize_text(first_name, User.first_name.type.length, "First name"),
            last_name=sanitize_text(last_name, User.last_name.type.length, "Last name"),
            email=email,
            password_hash=get_password_hash(password),
            email_verified=verified,
            email_verification_token=None if verified else generate_session_token(),
            status=ACCOUNT_ACTIVE,
        )
        try:
            user.roles.append(get_role(self.db, DEFAULT_ROLE.value))
            self.db.add(user)
            self.db.flush()
            log_activity(
                self.db, "register", user_id=user.id, details="User account created",
                ip_address=ip_address, user_agent=user_agent,
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            self.limiter.record(rate_key, "register", success=False)
            raise ValidationError("Email address is already registered")
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError("An error occurred during registration", detail=e)

        self.limiter.record(rate_key, "register", success=True)
        logger.info(f"New user registered: {user.email} (ID: {user.id}) from IP: {ip_address}")

        return {
            "user_id": user.id,
            "email": user.email,
            "name": user.full_name,
            "email_verified": user.email_verified,
            "verification_email_sent": False,
        }

    def login(
        self,
        email: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Verify credentials and issue a signed token plus a session token."""
        if not self.limiter.allow(email, "login"):
            logger.warning(f"Login locked out for email: {email} from IP: {ip_address}")
            raise RateLimitedError("Too many login attempts. Please try again later.")

        user = self.db.scalars(select(User).where(User.email == email)).first()
        if user is None or not user.is_active or not verify_password(password, user.password_hash):
            logger.warning(f"Failed login attempt for email: {email} from IP: {ip_address}")
            self.limiter.record(email, "login", success=False)
            raise AuthenticationError("Invalid email or password")

        if not user.email_verified:
            raise AuthorizationError("Please verify your email before logging in")

        now = utcnow()
        ttl = self.settings.access_token_expire_seconds
        expires_at = now + timedelta(seconds=ttl)
        token = self.codec.issue(
            {"sub": str(user.id), "email": user.email, "name": user.full_name},
            ttl=ttl,
            now=now,
        )
        session_token = generate_session_token()
        previous_login = user.last_login

        try:
            self.db.add(UserSession(
                user_id=user.id,
                session_token=session_token,
                expires_at=expires_at,
                ip_address=ip_address,
                user_agent=user_agent[:500] if user_agent else None,
                created_at=now,
            ))
            user.last_login = now
            log_activity(
                self.db, "login", user_id=user.id, details="User logged in successfully",
                ip_address=ip_address, user_agent=user_agent,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError("An error occurred during login", detail=e)

        self.limiter.record(email, "login", success=True)
        roles = user.role_names
        logger.info(f"Successful login: {user.email} (ID: {user.id}, roles: {roles}) from IP: {ip_address}")

        return {
            "token": token,
            "session_token": session_token,
            "expires_at": format_datetime(expires_at),
            "user": {
                "id": user.id,
                "name": user.full_name,
                "first_name": user.first_name,
                "last_name": user.last_name,
                "email": user.email,
                "email_verified": user.email_verified,
                "last_login": format_datetime(previous_login),
                "roles": roles,
            },
            "redirect": "admin.html" if RBACPolicy.is_staff(roles) else "index.html",
        }

    def logout(self, token: Optional[str], ip_address: Optional[str] = None) -> None:
        """Delete every session of the token's subject. Never raises."""
        if not token:
            return
        try:
            user_id = int(self.codec.verify(token)["sub"])
        except (TokenError, ValueError):
            return

        try:
            self.db.execute(delete(UserSession).where(UserSession.user_id == user_id))
            log_activity(self.db, "logout", user_id=user_id, details="User logged out", ip_address=ip_address)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Logout cleanup failed for user {user_id}: {e}")

    def change_password(
        self,
        user: User,
        current_password: str,
        new_password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        self._check_password_policy(new_password, NEW_PASSWORD_POLICY_MESSAGE)

        if not verify_password(current_password, user.password_hash):
            raise ValidationError("Current password is incorrect")

        try:
            user.password_hash = get_password_hash(new_password)
            user.updated_at = utcnow()
            log_activity(
                self.db, "password_changed", user_id=user.id,
                details="User password changed successfully",
                ip_address=ip_address, user_agent=user_agent,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError("An error occurred while changing password", detail=e)

    # ========== TOKEN VALIDATION ==========

    def describe_identity(self, identity: Identity, staff_view: bool = False) -> Dict[str, Any]:
        """User block returned by the token validation endpoints."""
        user = identity.user
        data: Dict[str, Any] = {
            "id": user.id,
            "name": user.full_name,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "email": user.email,
            "email_verified": user.email_verified,
            "status": user.status,
            "last_login": format_datetime(user.last_login),
            "roles": identity.roles,
            "permissions": identity.permissions,
        }
        if staff_view:
            data.update({
                "is_admin": identity.has_role(RoleName.ADMIN.value),
                "is_manager": identity.has_role(RoleName.MANAGER.value),
                "is_support": identity.has_role(RoleName.SUPPORT.value),
            })
        return data

    def validate_token(self, identity: Identity, staff_view: bool = False, ip_address: Optional[str] = None) -> Dict[str, Any]:
        action = "admin_access" if staff_view else "token_validation"
        details = "Admin panel accessed" if staff_view else "Token validated successfully"
        log_activity(self.db, action, user_id=identity.id, details=details, ip_address=ip_address, commit=True)

        exp = identity.claims.get("exp")
        expires_at = datetime.fromtimestamp(exp, tz=timezone.utc) if exp is not None else None
        return {
            "user": self.describe_identity(identity, staff_view=staff_view),
            "token_expires_at": format_datetime(expires_at),
        }

    # ========== PROFILE ==========

    def _ticket_counts(self, user_id: int) -> Dict[str, int]:
        row = self.db.execute(
            select(
                func.count(SupportTicket.id),
                func.sum(case((SupportTicket.status.in_(ACTIVE_STATUSES), 1), else_=0)),
                func.sum(case((SupportTicket.status.in_(RESOLVED_STATUSES), 1), else_=0)),
            ).where(SupportTicket.user_id == user_id)
        ).one()
        return {
            "total_tickets": int(row[0] or 0),
            "active_tickets": int(row[1] or 0),
            "resolved_tickets": int(row[2] or 0),
        }

    def get_profile(self, user: User) -> Dict[str, Any]:
        return {
            "id": user.id,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "name": user.full_name,
            "email": user.email,
            "phone": user.phone,
            "company": user.company,
            "job_title": user.job_title,
            "bio": user.bio,
            "profile_image": user.profile_image,
            "email_verified": user.email_verified,
            "status": user.status,
            "last_login": format_datetime(user.last_login),
            "created_at": format_datetime(user.created_at),
            "stats": self._ticket_counts(user.id),
        }

    def update_profile(
        self,
        user: User,
        first_name: str,
        last_name: str,
        email: str,
        phone: Optional[str] = None,
        company: Optional[str] = None,
        job_title: Optional[str] = None,
        bio: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Replace the editable profile fields. Blank optional fields are cleared."""
        taken = self.db.scalars(
            select(User.id).where(User.email == email, User.id != user.id)
        ).first()
        if taken is not None:
            raise ValidationError("Email address is already in use by another account")

        fields = {
            "first_name": sanitize_text(first_name, User.first_name.type.length, "First name"),
            "last_name": sanitize_text(last_name, User.last_name.type.length, "Last name"),
            "email": email,
            "phone": sanitize_optional(phone, User.phone.type.length, "Phone"),
            "company": sanitize_optional(company, User.company.type.length, "Company"),
            "job_title": sanitize_optional(job_title, User.job_title.type.length, "Job title"),
            "bio": sanitize_optional(bio),
        }

        try:
            for name, value in fields.items():
                setattr(user, name, value)
            user.updated_at = utcnow()
            log_activity(
                self.db, "profile_updated", user_id=user.id,
                details="User profile information updated",
                ip_address=ip_address, user_agent=user_agent,
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ValidationError("Email address is already in use by another account")
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError("An error occurred while updating profile", detail=e)

        return {
            "first_name": user.first_name,
            "last_name": user.last_name,
            "name": user.full_name,
            "email": user.email,
            "phone": user.phone,
            "company": user.company,
            "job_title": user.job_title,
            "bio": user.bio,
            "updated_at": format_datetime(user.updated_at),
        }

    # ========== ADMINISTRATION ==========

    def list_users(self) -> List[Dict[str, Any]]:
        """All users, newest first, with roles and ticket counts."""
        counts = dict(self.db.execute(
            select(SupportTicket.user_id, func.count(SupportTicket.id)).group_by(SupportTicket.user_id)
        ).all())
        users = self.db.scalars(select(User).order_by(User.created_at.desc(), User.id.desc())).all()

        return [
            {
                "id": u.id,
                "first_name": u.first_name,
                "last_name": u.last_name,
                "name": u.full_name,
                "email": u.email,
                "phone": u.phone,
                "company": u.company,
                "status": u.status,
                "email_verified": u.email_verified,
                "last_login": format_datetime(u.last_login),
                "created_at": format_datetime(u.created_at),
                "roles": u.role_names,
                "ticket_count": counts.get(u.id, 0),
            }
            for u in users
        ]

    def toggle_status(
        self,
        actor: Identity,
        target_id: int,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Flip a user between active and inactive.

        Raises:
            AuthorizationError: self-targeting, or a non-admin targeting an admin.
            NotFoundError: unknown ``target_id``.
        """
        target = self.db.get(User, target_id)
        if target is None:
            raise NotFoundError("User not found")

        RBACPolicy.check_status_change(actor.id, actor.roles, target.id, target.role_names)

        new_status = ACCOUNT_INACTIVE if target.status == ACCOUNT_ACTIVE else ACCOUNT_ACTIVE
        try:
            target.status = new_status
            target.updated_at = utcnow()
            log_activity(
                self.db, "user_status_changed", user_id=actor.id,
                details=f"Changed user {target.full_name} (#{target.id}) status to {new_status}",
                ip_address=ip_address, user_agent=user_agent,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError("An error occurred while updating user status", detail=e)

        logger.info(f"User {actor.id} set account {target.id} to {new_status}")
        return {
            "user_id": target.id,
            "new_status": new_status,
            "user_name": target.full_name,
        }


def create_staff_user(
    db: Session,
    first_name: str,
    last_name: str,
    email: str,
    password: str,
    roles: List[str],
    password_min_length: int = 8,
) -> User:
    """Create a verified, active account holding ``roles``.

    Registration only ever creates customers; this is how staff accounts
    are bootstrapped. The password must pass the same strength gate as
    registration.
    """
    strength = password_strength(password, password_min_length)
    if not strength.acceptable:
        raise ValidationError(
            PASSWORD_POLICY_MESSAGE.format(n=password_min_length),
            data={"missing": strength.missing, "score": strength.score},
        )
    unknown = [r for r in roles if r not in {rn.value for rn in RoleName}]
    if unknown:
        raise ValidationError(f"Unknown role(s): {', '.join(unknown)}")
    if db.scalars(select(User.id).where(User.email == email)).first() is not None:
        raise ValidationError("Email address is already registered")

    user = User(
        first_name=first_name,
        last_name=last_name,
        email=email,
        password_hash=get_password_hash(password),
        email_verified=True,
        status=ACCOUNT_ACTIVE,
    )
    user.roles.extend(get_role(db, name) for name in roles)
    db.add(user)
    db.flush()
    log_activity(db, "staff_created", user_id=user.id, details=f"Roles: {', '.join(sorted(roles))}")
    db.commit()
    return user

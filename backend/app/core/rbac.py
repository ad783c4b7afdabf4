"""Role-Based Access Control (RBAC) utilities.

Every protected request goes through ``get_current_identity``: the bearer
token is verified, the subject is re-read from the database (it must still
exist and be active), and its roles and permissions are loaded fresh. Role
requirements are then checked with OR semantics by ``require_roles``.
"""

import logging
from dataclasses import dataclass, field
from typing import Annotated, Any, Dict, Iterable, List

from fastapi import Depends, Request

from app.core.config import Settings, get_settings
from app.core.exceptions import AuthenticationError, AuthorizationError
from app.core.rbac_policy import STAFF_ROLES, USER_MANAGER_ROLES, RBACPolicy
from app.core.security import TokenCodec, TokenError, extract_bearer_token
from app.db.session import DbSession
from app.models.user import User

logger = logging.getLogger("auth")


@dataclass
class Identity:
    """Authenticated caller with roles resolved for this request only.

    Attributes:
        user: The live ``User`` row.
        roles: Role names held right now.
        permissions: Union of the permission sets of ``roles``.
        claims: Verified token claims (``exp`` is used for ``token_expires_at``).
    """

    user: User
    roles: List[str] = field(default_factory=list)
    permissions: List[str] = field(default_factory=list)
    claims: Dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> int:
        return self.user.id

    def has_role(self, role: str) -> bool:
        return role in self.roles


SettingsDep = Annotated[Settings, Depends(get_settings)]


def get_token_codec(settings: SettingsDep) -> TokenCodec:
    return TokenCodec.from_settings(settings)


TokenCodecDep = Annotated[TokenCodec, Depends(get_token_codec)]


def load_identity(db, user: User, claims: Dict[str, Any] = None) -> Identity:
    """Resolve roles and permissions of ``user`` from the role tables."""
    db.refresh(user, attribute_names=["roles"])
    roles = sorted(r.name for r in user.roles)
    permissions = set()
    for role in user.roles:
        permissions.update(role.permissions or [])
    return Identity(user=user, roles=roles, permissions=sorted(permissions), claims=claims or {})


def resolve_token(db, codec: TokenCodec, token: str) -> Identity:
    """Verify ``token`` and return the identity of a live, active subject.

    Raises:
        AuthenticationError: on any token failure, or when the subject no
            longer exists or is inactive.
    """
    try:
        claims = codec.verify(token)
    except TokenError as e:
        logger.info(f"Token rejected: {type(e).__name__}")
        raise AuthenticationError("Invalid or expired token")

    try:
        user_id = int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        raise AuthenticationError("Invalid token payload")

    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("User account not found or inactive")

    return load_identity(db, user, claims)


def get_current_identity(request: Request, db: DbSession, codec: TokenCodecDep) -> Identity:
    """Get the current authenticated identity from the ``Authorization`` header."""
    token = extract_bearer_token(request.headers.get("Authorization"))
    if not token:
        raise AuthenticationError("No token provided")
    return resolve_token(db, codec, token)


def authorize(identity: Identity, required_roles: Iterable[str]) -> Identity:
    """Grant when ``identity`` holds any of ``required_roles``, else raise 403."""
    if not RBACPolicy.has_any_role(identity.roles, required_roles):
        raise AuthorizationError("Insufficient permissions")
    return identity


def require_roles(*roles: str):
    """Dependency factory: the caller must hold at least one of ``roles``."""

    def role_checker(identity: Annotated[Identity, Depends(get_current_identity)]) -> Identity:
        return authorize(identity, roles)

    return role_checker


# Common role dependencies
CurrentUser = Annotated[Identity, Depends(get_current_identity)]
RequireStaff = Annotated[Identity, Depends(require_roles(*STAFF_ROLES))]
RequireUserManager = Annotated[Identity, Depends(require_roles(*USER_MANAGER_ROLES))]

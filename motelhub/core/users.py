# motelhub/core/users.py
"""
Authentication seam and role-based access control.

Tokens are issued by the external auth service (HS256 JWT, `sub` = user id,
shared SECRET_KEY); this module only validates them and loads the User.
"""
import logging
import uuid
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlmodel import Session

from ..db.engine import get_session
from ..models.user import User
from .config import get_settings
from .constants import UserRole
from .errors import ForbiddenError, UnauthorizedError

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def decode_user_id(token: str) -> uuid.UUID:
    try:
        payload = jwt.decode(token, get_settings().secret_key, algorithms=[ALGORITHM])
        return uuid.UUID(str(payload.get("sub")))
    except (JWTError, ValueError) as e:
        logger.debug(f"Rejected token: {e}")
        raise UnauthorizedError("Phiên đăng nhập không hợp lệ hoặc đã hết hạn")


def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    session: Session = Depends(get_session),
) -> User:
    """Resolve the bearer token to an active User."""
    if not token:
        raise UnauthorizedError("Vui lòng đăng nhập")

    user = session.get(User, decode_user_id(token))
    if not user or user.disabled:
        raise UnauthorizedError("Tài khoản không tồn tại hoặc đã bị khóa")
    return user


# --- Role-Based Access Control ---


class RoleChecker:
    """
    Dependency class to check if the current user has one of the allowed roles.

    Usage:
        @router.post("/invoices/generate")
        def generate(user: User = Depends(require_billing)):
            ...
    """

    def __init__(self, allowed_roles: list[UserRole]):
        self.allowed_roles = allowed_roles

    def __call__(self, user: User = Depends(get_current_user)) -> User:
        if user.role not in self.allowed_roles:
            raise ForbiddenError(
                "Bạn không có quyền thực hiện thao tác này",
                details={"requiredRoles": [role.value for role in self.allowed_roles]},
            )
        return user


# Pre-configured role checkers for common use cases
require_admin = RoleChecker([UserRole.ADMIN])
require_billing = RoleChecker([UserRole.ADMIN, UserRole.STAFF, UserRole.LANDLORD])

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .database import get_db
from .models import User

logger = logging.getLogger(__name__)

ROLES = ("client", "professional", "admin")


@dataclass
class CurrentUser:
    """Authenticated caller and the role they are acting under"""

    user: User
    role: str

    @property
    def id(self) -> int:
        return self.user.id


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> CurrentUser:
    """
    Resolve the caller forwarded by the identity gateway.

    The gateway has already verified the session token and passes the user id
    and the selected role as headers; the role must be one the user holds.
    """
    if not x_user_id or not x_user_role:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        user_id = int(x_user_id)
    except ValueError:
        logger.warning(f"Malformed X-User-Id header: {x_user_id!r}")
        raise HTTPException(status_code=401, detail="Not authenticated")

    role = x_user_role.strip().lower()
    if role not in ROLES:
        raise HTTPException(status_code=401, detail="Unknown role")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        logger.warning(f"Authenticated user {user_id} not found")
        raise HTTPException(status_code=401, detail="User not found")

    if not user.has_role(role):
        logger.warning(f"User {user_id} does not hold role '{role}'")
        raise HTTPException(status_code=403, detail="Role not granted to user")

    return CurrentUser(user=user, role=role)


def require_roles(*roles: str):
    """
    Dependency factory restricting a route to callers acting under one of the roles

    Example:
        @router.get("/agenda")
        def agenda(current: CurrentUser = Depends(require_roles("professional"))):
            ...
    """

    def checker(current: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current.role not in roles:
            logger.warning(
                f"User {current.id} acting as '{current.role}' denied; requires {', '.join(roles)}"
            )
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return current

    return checker

"""Scheduling access repository - Database operations for agenda grants"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import SchedulingAccess, User


class SchedulingAccessRepository:
    """Repository for scheduling access grants. Nothing here commits."""

    @staticmethod
    def get_professional(db: Session, professional_id: int) -> Optional[User]:
        user = db.query(User).filter(User.id == professional_id).first()
        if user and user.has_role("professional"):
            return user
        return None

    @staticmethod
    def deactivate_all(db: Session, professional_id: int) -> int:
        """Deactivate every active grant of the professional; returns affected rows"""
        return (
            db.query(SchedulingAccess)
            .filter(
                SchedulingAccess.professional_id == professional_id,
                SchedulingAccess.is_active.is_(True),
            )
            .update({SchedulingAccess.is_active: False}, synchronize_session="fetch")
        )

    @staticmethod
    def insert_grant(
        db: Session,
        professional_id: int,
        starts_at: datetime,
        expires_at: datetime,
        reason: Optional[str] = None,
        granted_by: Optional[int] = None,
    ) -> SchedulingAccess:
        grant = SchedulingAccess(
            professional_id=professional_id,
            granted_by=granted_by,
            starts_at=starts_at,
            expires_at=expires_at,
            reason=reason,
            is_active=True,
            created_at=starts_at,
        )
        db.add(grant)
        db.flush()
        return grant

    @staticmethod
    def get_active_grant(db: Session, professional_id: int) -> Optional[SchedulingAccess]:
        """Most recent active grant (at most one exists)"""
        return (
            db.query(SchedulingAccess)
            .options(joinedload(SchedulingAccess.granter))
            .filter(
                SchedulingAccess.professional_id == professional_id,
                SchedulingAccess.is_active.is_(True),
            )
            .order_by(SchedulingAccess.created_at.desc(), SchedulingAccess.id.desc())
            .first()
        )

    @staticmethod
    def get_active_grants_by_professional(db: Session) -> dict[int, SchedulingAccess]:
        grants = (
            db.query(SchedulingAccess)
            .options(joinedload(SchedulingAccess.granter))
            .filter(SchedulingAccess.is_active.is_(True))
            .order_by(SchedulingAccess.created_at.asc(), SchedulingAccess.id.asc())
            .all()
        )
        # Later rows win if an older active row slipped through
        return {grant.professional_id: grant for grant in grants}

    @staticmethod
    def list_professionals(db: Session) -> list[User]:
        # roles is a JSON list; filter in Python to stay portable across backends
        users = db.query(User).order_by(User.name.asc()).all()
        return [u for u in users if u.has_role("professional")]

"""Scheduling access service - the ledger of time-boxed agenda entitlements"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...errors import InvalidInput, NoActiveGrant, NotFound
from ...models import SchedulingAccess
from ...services.notification_service import queue_notification
from ...shared.time_utils import to_utc_naive, utcnow
from .repository import SchedulingAccessRepository

logger = logging.getLogger(__name__)

PAYMENT_GRANT_REASON = "MercadoPago payment"


def grant_is_effective(grant: Optional[SchedulingAccess], now: Optional[datetime] = None) -> bool:
    """A grant counts only while active and unexpired; evaluated at read time"""
    if grant is None or not grant.is_active:
        return False
    return grant.expires_at > (now or utcnow())


class SchedulingAccessService:
    def __init__(self, db: Session):
        self.db = db

    def apply_grant(
        self,
        professional_id: int,
        expires_at: datetime,
        reason: Optional[str] = None,
        granted_by: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> SchedulingAccess:
        """
        Replace the professional's active grant inside the caller's transaction.

        Prior grants are deactivated before the new one is inserted, so at most
        one grant stays active. The caller commits.
        """
        now = now or utcnow()
        deactivated = SchedulingAccessRepository.deactivate_all(self.db, professional_id)
        grant = SchedulingAccessRepository.insert_grant(
            self.db,
            professional_id=professional_id,
            starts_at=now,
            expires_at=expires_at,
            reason=reason,
            granted_by=granted_by,
        )
        logger.info(
            f"Scheduling access for professional {professional_id} set until "
            f"{expires_at.isoformat()} ({deactivated} previous grant(s) deactivated)"
        )
        return grant

    def apply_paid_grant(self, professional_id: int, duration_days: int) -> SchedulingAccess:
        """Grant purchased through the gateway: now + duration_days (caller commits)"""
        now = utcnow()
        grant = self.apply_grant(
            professional_id,
            expires_at=now + timedelta(days=duration_days),
            reason=PAYMENT_GRANT_REASON,
            now=now,
        )
        queue_notification(
            self.db,
            professional_id,
            "Agenda access activated",
            f"Your agenda access is active for {duration_days} days.",
            "success",
        )
        return grant

    def grant(
        self,
        professional_id: int,
        expires_at: datetime,
        reason: Optional[str] = None,
        granted_by: Optional[int] = None,
    ) -> SchedulingAccess:
        """Admin grant, committed as one transaction"""
        professional = SchedulingAccessRepository.get_professional(self.db, professional_id)
        if not professional:
            raise NotFound("Professional not found", field="professional_id")

        expires_at = to_utc_naive(expires_at)
        if expires_at is None or expires_at <= utcnow():
            raise InvalidInput("expires_at must be in the future", field="expires_at")

        reason = reason.strip() if reason and reason.strip() else None
        try:
            grant = self.apply_grant(professional_id, expires_at, reason, granted_by)
            message = f"You have been granted agenda access until {expires_at.strftime('%d/%m/%Y')}."
            if reason:
                message += f" Reason: {reason}"
            queue_notification(
                self.db, professional_id, "Agenda access granted", message, "success"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"Failed to grant scheduling access to professional {professional_id}")
            raise

        self.db.refresh(grant)
        logger.info(f"Admin {granted_by} granted scheduling access {grant.id} to {professional_id}")
        return grant

    def revoke(self, professional_id: int, revoked_by: Optional[int] = None) -> SchedulingAccess:
        """Deactivate the professional's active grant and return it"""
        grant = self.current_grant(professional_id)
        if grant is None:
            raise NoActiveGrant(
                "No active scheduling access found for this professional",
                field="professional_id",
            )

        try:
            SchedulingAccessRepository.deactivate_all(self.db, professional_id)
            queue_notification(
                self.db,
                professional_id,
                "Agenda access revoked",
                "Your agenda access has been revoked by the administrator.",
                "warning",
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(grant)
        logger.info(
            f"Scheduling access {grant.id} of professional {professional_id} revoked by {revoked_by}"
        )
        return grant

    def current_grant(self, professional_id: int) -> Optional[SchedulingAccess]:
        return SchedulingAccessRepository.get_active_grant(self.db, professional_id)

    def is_effective(self, professional_id: int, now: Optional[datetime] = None) -> bool:
        return grant_is_effective(self.current_grant(professional_id), now)

    def list_professionals(self, now: Optional[datetime] = None) -> list[dict]:
        """Admin overview: every professional with their current grant, ordered by name"""
        now = now or utcnow()
        grants = SchedulingAccessRepository.get_active_grants_by_professional(self.db)

        overview = []
        for professional in SchedulingAccessRepository.list_professionals(self.db):
            grant = grants.get(professional.id)
            overview.append(
                {
                    "id": professional.id,
                    "name": professional.name,
                    "email": professional.email,
                    "phone": professional.phone,
                    "category_name": professional.category_name,
                    "has_scheduling_access": grant_is_effective(grant, now),
                    "access_expires_at": grant.expires_at if grant else None,
                    "access_reason": grant.reason if grant else None,
                    "access_granted_at": grant.created_at if grant else None,
                    "access_granted_by": grant.granter.name if grant and grant.granter else None,
                }
            )
        return overview

"""Scheduling access router - admin grant management and the professional's status view"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import CurrentUser, require_roles
from ...database import get_db
from .schemas import (
    GrantSchedulingAccessRequest,
    SchedulingAccessChangeResponse,
    ProfessionalSchedulingAccess,
    RevokeSchedulingAccessRequest,
    SchedulingAccessResponse,
    SchedulingAccessStatus,
)
from .service import SchedulingAccessService, grant_is_effective

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Scheduling Access"])


def get_scheduling_access_service(db: Session = Depends(get_db)) -> SchedulingAccessService:
    return SchedulingAccessService(db)


@router.get(
    "/admin/professionals-scheduling-access",
    response_model=list[ProfessionalSchedulingAccess],
)
async def list_professionals_scheduling_access(
    current: CurrentUser = Depends(require_roles("admin")),
    service: SchedulingAccessService = Depends(get_scheduling_access_service),
):
    return [ProfessionalSchedulingAccess(**row) for row in service.list_professionals()]


@router.post("/admin/grant-scheduling-access", response_model=SchedulingAccessChangeResponse)
async def grant_scheduling_access(
    data: GrantSchedulingAccessRequest,
    current: CurrentUser = Depends(require_roles("admin")),
    service: SchedulingAccessService = Depends(get_scheduling_access_service),
):
    """Grant (or extend) a professional's agenda access, replacing any active grant"""
    grant = service.grant(
        data.professional_id,
        expires_at=data.expires_at,
        reason=data.reason,
        granted_by=current.id,
    )
    return SchedulingAccessChangeResponse(
        message="Scheduling access granted successfully",
        access=SchedulingAccessResponse.model_validate(grant),
    )


@router.post("/admin/revoke-scheduling-access", response_model=SchedulingAccessChangeResponse)
async def revoke_scheduling_access(
    data: RevokeSchedulingAccessRequest,
    current: CurrentUser = Depends(require_roles("admin")),
    service: SchedulingAccessService = Depends(get_scheduling_access_service),
):
    grant = service.revoke(data.professional_id, revoked_by=current.id)
    return SchedulingAccessChangeResponse(
        message="Scheduling access revoked successfully",
        access=SchedulingAccessResponse.model_validate(grant),
    )


@router.get("/scheduling-access/status", response_model=SchedulingAccessStatus)
async def get_scheduling_access_status(
    current: CurrentUser = Depends(require_roles("professional")),
    service: SchedulingAccessService = Depends(get_scheduling_access_service),
):
    """The calling professional's current agenda access"""
    grant = service.current_grant(current.id)
    return SchedulingAccessStatus(
        has_scheduling_access=grant_is_effective(grant),
        expires_at=grant.expires_at if grant else None,
        reason=grant.reason if grant else None,
    )

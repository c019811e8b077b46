"""Consultation router - FastAPI endpoints for the agenda and consultation lifecycle"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ...auth import CurrentUser, require_roles
from ...database import get_db
from ...errors import NotFound
from .recurrence import RecurrenceGenerator, RecurrenceRequest
from .schemas import (
    ConsultationCreate,
    ConsultationResponse,
    ConsultationStatusUpdate,
    ConsultationUpdate,
    OccurrenceFailure,
    RecurringConsultationCreate,
    RecurringConsultationResponse,
    WhatsAppLinkResponse,
)
from .service import ConsultationService, build_consultation_entry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/consultations", tags=["Consultations"])


def get_consultation_service(db: Session = Depends(get_db)) -> ConsultationService:
    """Dependency injection for ConsultationService"""
    return ConsultationService(db)


def get_recurrence_generator(db: Session = Depends(get_db)) -> RecurrenceGenerator:
    return RecurrenceGenerator(db)


# ============================================================================
# AGENDA
# ============================================================================


@router.get("/agenda", response_model=list[ConsultationResponse])
async def get_agenda(
    date: Optional[date] = Query(None, description="Local calendar day (YYYY-MM-DD)"),
    timezone_offset: int = Query(0, description="Minutes east of UTC, e.g. -180"),
    current: CurrentUser = Depends(require_roles("professional")),
    service: ConsultationService = Depends(get_consultation_service),
):
    """Consultations on the professional's agenda, ordered by date"""
    entries = service.list_for_agenda(current.id, date, timezone_offset)
    return [ConsultationResponse(**entry) for entry in entries]


@router.post("", response_model=ConsultationResponse, status_code=status.HTTP_201_CREATED)
async def create_consultation(
    data: ConsultationCreate,
    current: CurrentUser = Depends(require_roles("professional")),
    service: ConsultationService = Depends(get_consultation_service),
):
    patient = service.patients.resolve(
        member_id=data.user_id,
        dependent_id=data.dependent_id,
        private_patient_id=data.private_patient_id,
    )
    consultation = service.create(
        current.id,
        patient,
        service_id=data.service_id,
        value=data.value,
        when=data.date,
        location_id=data.location_id,
        notes=data.notes,
    )
    return ConsultationResponse(**build_consultation_entry(consultation))


@router.post("/recurring", response_model=RecurringConsultationResponse)
async def create_recurring_consultations(
    data: RecurringConsultationCreate,
    current: CurrentUser = Depends(require_roles("professional")),
    generator: RecurrenceGenerator = Depends(get_recurrence_generator),
):
    """Create a daily or weekly series of consultations"""
    request = RecurrenceRequest(
        member_id=data.user_id,
        dependent_id=data.dependent_id,
        private_patient_id=data.private_patient_id,
        service_id=data.service_id,
        location_id=data.location_id,
        value=data.value,
        start_date=data.start_date,
        start_time=data.start_time,
        timezone_offset_minutes=data.timezone_offset,
        recurrence_type=data.recurrence_type,
        recurrence_interval=data.recurrence_interval,
        end_date=data.end_date,
        occurrences=data.occurrences,
        notes=data.notes,
    )
    result = generator.generate(current.id, request)
    return RecurringConsultationResponse(
        created_count=result.created_count,
        consultations=[
            ConsultationResponse(**build_consultation_entry(c)) for c in result.consultations
        ],
        failed_count=result.failed_count,
        failures=[OccurrenceFailure(date=f.date, detail=f.detail) for f in result.failures],
    )


@router.get("", response_model=list[ConsultationResponse])
async def list_all_consultations(
    current: CurrentUser = Depends(require_roles("admin")),
    service: ConsultationService = Depends(get_consultation_service),
):
    """All consultations across professionals (admin)"""
    return [ConsultationResponse(**entry) for entry in service.list_all()]


@router.get("/client/{client_id}", response_model=list[ConsultationResponse])
async def get_client_history(
    client_id: int,
    current: CurrentUser = Depends(require_roles("client", "admin")),
    service: ConsultationService = Depends(get_consultation_service),
):
    """A member's consultation history including their dependents"""
    if current.role == "client" and current.id != client_id:
        logger.warning(f"User {current.id} tried to read history of member {client_id}")
        raise NotFound("Member not found")
    return [ConsultationResponse(**entry) for entry in service.list_for_patient_history(client_id)]


# ============================================================================
# SINGLE CONSULTATION
# ============================================================================


@router.put("/{consultation_id}", response_model=ConsultationResponse)
async def update_consultation(
    consultation_id: int,
    data: ConsultationUpdate,
    current: CurrentUser = Depends(require_roles("professional")),
    service: ConsultationService = Depends(get_consultation_service),
):
    fields = data.model_dump(exclude_unset=True)
    consultation = service.update_full(consultation_id, current.id, fields)
    return ConsultationResponse(**build_consultation_entry(consultation))


@router.put("/{consultation_id}/status", response_model=ConsultationResponse)
async def update_consultation_status(
    consultation_id: int,
    data: ConsultationStatusUpdate,
    current: CurrentUser = Depends(require_roles("professional")),
    service: ConsultationService = Depends(get_consultation_service),
):
    consultation = service.set_status(consultation_id, current.id, data.status)
    return ConsultationResponse(**build_consultation_entry(consultation))


@router.delete("/{consultation_id}")
async def delete_consultation(
    consultation_id: int,
    current: CurrentUser = Depends(require_roles("professional")),
    service: ConsultationService = Depends(get_consultation_service),
):
    service.delete(consultation_id, current.id)
    return {"message": "Consultation deleted successfully"}


@router.get("/{consultation_id}/whatsapp", response_model=WhatsAppLinkResponse)
async def get_whatsapp_link(
    consultation_id: int,
    timezone_offset: int = Query(-180, description="Minutes east of UTC used in the message"),
    current: CurrentUser = Depends(require_roles("professional")),
    service: ConsultationService = Depends(get_consultation_service),
):
    """wa.me confirmation link for the consultation's patient"""
    url = service.whatsapp_link(consultation_id, current.id, timezone_offset)
    return WhatsAppLinkResponse(whatsapp_url=url)

"""Consultation service - Business logic for the consultation lifecycle"""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional
from urllib.parse import quote

from sqlalchemy.orm import Session

from ...errors import InvalidInput, NotFound, SubscriptionInactive
from ...models import Consultation, User
from ...shared.time_utils import is_valid_offset, local_day_bounds, to_utc_naive, utcnow
from ...shared.validators import normalize_br_phone, to_money
from ..patients import PRIVATE, PatientReference, PatientReferenceResolver
from .repository import ConsultationRepository
from .transitions import validate_status_change

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("service_id", "location_id", "value", "date", "status", "notes")


def patient_name(consultation: Consultation) -> Optional[str]:
    if consultation.private_patient_id is not None:
        return consultation.private_patient.name if consultation.private_patient else None
    if consultation.dependent_id is not None:
        return consultation.dependent.name if consultation.dependent else None
    return consultation.member.name if consultation.member else None


def patient_phone(consultation: Consultation) -> Optional[str]:
    """Contact phone; dependents are reached through the owning member"""
    if consultation.private_patient_id is not None:
        return consultation.private_patient.phone if consultation.private_patient else None
    if consultation.dependent_id is not None:
        dependent = consultation.dependent
        return dependent.user.phone if dependent and dependent.user else None
    return consultation.member.phone if consultation.member else None


def build_consultation_entry(consultation: Consultation) -> dict:
    """Flatten a consultation with its joined names for agenda and history views"""
    return {
        "id": consultation.id,
        "date": consultation.date,
        "status": consultation.status,
        "value": consultation.value,
        "notes": consultation.notes,
        "professional_id": consultation.professional_id,
        "professional_name": consultation.professional.name if consultation.professional else None,
        "service_id": consultation.service_id,
        "service_name": consultation.service.name if consultation.service else None,
        "location_id": consultation.location_id,
        "location_name": consultation.location.name if consultation.location else None,
        "user_id": consultation.user_id,
        "dependent_id": consultation.dependent_id,
        "private_patient_id": consultation.private_patient_id,
        "patient_name": patient_name(consultation),
        "patient_type": "private" if consultation.private_patient_id is not None else "convenio",
        "is_dependent": consultation.dependent_id is not None,
        "created_at": consultation.created_at,
        "updated_at": consultation.updated_at,
    }


class ConsultationService:
    """Service for consultation lifecycle operations, scoped to the calling professional"""

    def __init__(self, db: Session):
        self.db = db
        self.patients = PatientReferenceResolver(db)

    def _require_value(self, value) -> Decimal:
        amount = to_money(value)
        if amount is None or amount <= 0:
            raise InvalidInput("Value must be greater than zero", field="value")
        return amount

    def _require_service(self, service_id: int) -> None:
        if not ConsultationRepository.get_service(self.db, service_id):
            raise NotFound("Service not found", field="service_id")

    def _require_location(self, location_id: Optional[int], professional_id: int) -> None:
        if location_id is None:
            return
        if not ConsultationRepository.get_location(self.db, location_id, professional_id):
            raise NotFound("Attendance location not found", field="location_id")

    def _require_offset(self, timezone_offset_minutes: int) -> None:
        if not is_valid_offset(timezone_offset_minutes):
            raise InvalidInput("timezone_offset is out of range", field="timezone_offset")

    def _require_owned(self, consultation_id: int, professional_id: int) -> Consultation:
        consultation = ConsultationRepository.get_for_professional(
            self.db, consultation_id, professional_id
        )
        if not consultation:
            logger.warning(
                f"Consultation {consultation_id} not found for professional {professional_id}"
            )
            raise NotFound("Consultation not found")
        return consultation

    def check_patient(self, professional_id: int, patient: PatientReference) -> None:
        """Ownership and billability of a resolved patient for this professional"""
        if patient.kind == PRIVATE and patient.entity.professional_id != professional_id:
            raise NotFound("Patient not found", field="patient")
        if not patient.is_billable():
            logger.warning(
                f"Professional {professional_id} tried to book {patient.kind} {patient.id} "
                "without an active subscription"
            )
            raise SubscriptionInactive(
                "Patient does not have an active convenio subscription", field="patient"
            )

    def create(
        self,
        professional_id: int,
        patient: PatientReference,
        service_id: int,
        value,
        when: datetime,
        location_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Consultation:
        """Validate and persist a new consultation with status scheduled"""
        amount = self._require_value(value)
        if when is None:
            raise InvalidInput("Date is required", field="date")
        self._require_service(service_id)
        self._require_location(location_id, professional_id)
        self.check_patient(professional_id, patient)

        try:
            consultation = ConsultationRepository.create(
                self.db,
                professional_id=professional_id,
                service_id=service_id,
                location_id=location_id,
                value=amount,
                date=to_utc_naive(when),
                status="scheduled",
                notes=notes,
                **patient.column_values(),
            )
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Consultation {consultation.id} created by professional {professional_id} "
            f"for {patient.kind} {patient.id} at {consultation.date.isoformat()}"
        )
        return consultation

    def update_full(self, consultation_id: int, professional_id: int, fields: dict) -> Consultation:
        """
        Apply a partial update.

        Only keys present in fields are touched; value and status are
        re-validated and updated_at is always stamped.
        """
        consultation = self._require_owned(consultation_id, professional_id)

        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise InvalidInput(f"Unknown fields: {', '.join(sorted(unknown))}")

        # Validate everything before touching the row
        changes = {}
        for name in ("service_id", "date", "status"):
            if name in fields and fields[name] is None:
                raise InvalidInput(f"{name} cannot be empty", field=name)

        if "service_id" in fields:
            self._require_service(fields["service_id"])
            changes["service_id"] = fields["service_id"]

        if "location_id" in fields:
            self._require_location(fields["location_id"], professional_id)
            changes["location_id"] = fields["location_id"]

        if "value" in fields:
            changes["value"] = self._require_value(fields["value"])

        if "date" in fields:
            changes["date"] = to_utc_naive(fields["date"])

        if "status" in fields and validate_status_change(consultation.status, fields["status"]):
            logger.info(
                f"Consultation {consultation_id} status {consultation.status} -> {fields['status']}"
            )
            changes["status"] = fields["status"]

        if "notes" in fields:
            changes["notes"] = fields["notes"]

        for name, value in changes.items():
            setattr(consultation, name, value)
        consultation.updated_at = utcnow()
        try:
            return ConsultationRepository.save(self.db, consultation)
        except Exception:
            self.db.rollback()
            raise

    def set_status(self, consultation_id: int, professional_id: int, new_status: str) -> Consultation:
        consultation = self._require_owned(consultation_id, professional_id)
        previous = consultation.status

        if not validate_status_change(previous, new_status):
            logger.info(f"Consultation {consultation_id} already {previous}, nothing to change")
            return consultation

        consultation.status = new_status
        consultation.updated_at = utcnow()
        try:
            ConsultationRepository.save(self.db, consultation)
        except Exception:
            self.db.rollback()
            raise
        logger.info(
            f"Consultation {consultation_id} status {previous} -> {new_status} "
            f"by professional {professional_id}"
        )
        return consultation

    def delete(self, consultation_id: int, professional_id: int) -> None:
        consultation = self._require_owned(consultation_id, professional_id)
        try:
            ConsultationRepository.delete(self.db, consultation)
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"Consultation {consultation_id} deleted by professional {professional_id}")

    def list_for_agenda(
        self,
        professional_id: int,
        day: Optional[date] = None,
        timezone_offset_minutes: int = 0,
    ) -> list[dict]:
        """Agenda entries for one local calendar day (or all when day is None), oldest first"""
        self._require_offset(timezone_offset_minutes)
        start = end = None
        if day is not None:
            try:
                start, end = local_day_bounds(day, timezone_offset_minutes)
            except OverflowError:
                raise InvalidInput("date is out of range", field="date")
        consultations = ConsultationRepository.list_for_professional(
            self.db, professional_id, start, end
        )
        return [build_consultation_entry(c) for c in consultations]

    def list_for_patient_history(self, member_id: int) -> list[dict]:
        member = self.db.query(User).filter(User.id == member_id).first()
        if not member or not member.has_role("client"):
            raise NotFound("Member not found")
        consultations = ConsultationRepository.list_for_member(self.db, member_id)
        return [build_consultation_entry(c) for c in consultations]

    def list_all(self) -> list[dict]:
        return [build_consultation_entry(c) for c in ConsultationRepository.list_all(self.db)]

    def whatsapp_link(
        self, consultation_id: int, professional_id: int, timezone_offset_minutes: int = -180
    ) -> str:
        """wa.me link with a confirmation message for the patient's phone"""
        self._require_offset(timezone_offset_minutes)
        consultation = self._require_owned(consultation_id, professional_id)

        phone = normalize_br_phone(patient_phone(consultation))
        if not phone:
            raise InvalidInput("Patient phone number not found", field="phone")

        try:
            local = consultation.date + timedelta(minutes=timezone_offset_minutes)
        except OverflowError:
            raise InvalidInput("Consultation date is out of range", field="date")
        message = (
            f"Olá {patient_name(consultation)}, sua consulta está confirmada para "
            f"{local.strftime('%d/%m/%Y')} às {local.strftime('%H:%M')}"
        )
        return f"https://wa.me/{phone}?text={quote(message)}"

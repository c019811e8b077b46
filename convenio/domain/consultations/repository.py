"""Consultation repository - Database operations for consultations"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, joinedload

from ...models import AttendanceLocation, Consultation, Dependent, Service


def _with_relations(query):
    return query.options(
        joinedload(Consultation.service),
        joinedload(Consultation.location),
        joinedload(Consultation.member),
        joinedload(Consultation.dependent).joinedload(Dependent.user),
        joinedload(Consultation.private_patient),
        joinedload(Consultation.professional),
    )


class ConsultationRepository:
    """Repository for consultation database operations"""

    @staticmethod
    def get_for_professional(
        db: Session, consultation_id: int, professional_id: int
    ) -> Optional[Consultation]:
        """Get a consultation owned by the professional"""
        return (
            _with_relations(db.query(Consultation))
            .filter(
                Consultation.id == consultation_id,
                Consultation.professional_id == professional_id,
            )
            .first()
        )

    @staticmethod
    def get_service(db: Session, service_id: int) -> Optional[Service]:
        return db.query(Service).filter(Service.id == service_id).first()

    @staticmethod
    def get_location(
        db: Session, location_id: int, professional_id: int
    ) -> Optional[AttendanceLocation]:
        return (
            db.query(AttendanceLocation)
            .filter(
                AttendanceLocation.id == location_id,
                AttendanceLocation.professional_id == professional_id,
            )
            .first()
        )

    @staticmethod
    def create(db: Session, **consultation_data) -> Consultation:
        """Create a consultation in its own transaction"""
        consultation = Consultation(**consultation_data)
        db.add(consultation)
        db.commit()
        db.refresh(consultation)
        return consultation

    @staticmethod
    def save(db: Session, consultation: Consultation) -> Consultation:
        db.commit()
        db.refresh(consultation)
        return consultation

    @staticmethod
    def delete(db: Session, consultation: Consultation) -> None:
        db.delete(consultation)
        db.commit()

    @staticmethod
    def list_for_professional(
        db: Session,
        professional_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Consultation]:
        """Professional's consultations, optionally within [start, end), oldest first"""
        query = _with_relations(db.query(Consultation)).filter(
            Consultation.professional_id == professional_id
        )
        if start is not None:
            query = query.filter(Consultation.date >= start)
        if end is not None:
            query = query.filter(Consultation.date < end)
        return query.order_by(Consultation.date.asc(), Consultation.id.asc()).all()

    @staticmethod
    def list_for_member(db: Session, member_id: int) -> list[Consultation]:
        """A member's consultations plus those of all their dependents, newest first"""
        dependent_ids = select(Dependent.id).where(Dependent.user_id == member_id)
        return (
            _with_relations(db.query(Consultation))
            .filter(
                or_(
                    Consultation.user_id == member_id,
                    Consultation.dependent_id.in_(dependent_ids),
                )
            )
            .order_by(Consultation.date.desc(), Consultation.id.desc())
            .all()
        )

    @staticmethod
    def list_all(db: Session) -> list[Consultation]:
        return (
            _with_relations(db.query(Consultation))
            .order_by(Consultation.date.desc(), Consultation.id.desc())
            .all()
        )

"""Patient reference resolution - exactly one of member, dependent or private patient"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from sqlalchemy.orm import Session

from ...errors import InvalidPatientSelection, NotFound
from ...models import Dependent, PrivatePatient, User
from ...shared.time_utils import utcnow

logger = logging.getLogger(__name__)

MEMBER = "member"
DEPENDENT = "dependent"
PRIVATE = "private"


def effective_subscription_status(
    status: Optional[str], expiry: Optional[datetime], now: Optional[datetime] = None
) -> str:
    """Stored status with lazy expiry applied: an active subscription past its expiry reads as expired"""
    status = status or "pending"
    if status == "active" and expiry is not None and expiry <= (now or utcnow()):
        return "expired"
    return status


@dataclass(frozen=True)
class PatientReference:
    kind: str
    id: int
    entity: Union[User, Dependent, PrivatePatient]

    @property
    def is_convenio(self) -> bool:
        return self.kind in (MEMBER, DEPENDENT)

    @property
    def name(self) -> str:
        return self.entity.name

    def is_billable(self, now: Optional[datetime] = None) -> bool:
        """Private patients are always billable; convenio patients need an active subscription"""
        if self.kind == PRIVATE:
            return True
        status = effective_subscription_status(
            self.entity.subscription_status, self.entity.subscription_expiry, now
        )
        return status == "active"

    def column_values(self) -> dict:
        """Consultation foreign-key columns for this reference"""
        return {
            "user_id": self.id if self.kind == MEMBER else None,
            "dependent_id": self.id if self.kind == DEPENDENT else None,
            "private_patient_id": self.id if self.kind == PRIVATE else None,
        }


class PatientReferenceResolver:
    """Validates patient selections; never writes"""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def select(
        member_id: Optional[int] = None,
        dependent_id: Optional[int] = None,
        private_patient_id: Optional[int] = None,
    ) -> tuple[str, int]:
        """Return (kind, id) for the single identifier given"""
        given = [
            (kind, value)
            for kind, value in (
                (MEMBER, member_id),
                (DEPENDENT, dependent_id),
                (PRIVATE, private_patient_id),
            )
            if value is not None
        ]
        if len(given) != 1:
            raise InvalidPatientSelection()
        return given[0]

    def resolve(
        self,
        member_id: Optional[int] = None,
        dependent_id: Optional[int] = None,
        private_patient_id: Optional[int] = None,
    ) -> PatientReference:
        kind, patient_id = self.select(member_id, dependent_id, private_patient_id)

        if kind == MEMBER:
            entity = self.db.query(User).filter(User.id == patient_id).first()
            if entity is not None and not entity.has_role("client"):
                entity = None
        elif kind == DEPENDENT:
            entity = self.db.query(Dependent).filter(Dependent.id == patient_id).first()
        else:
            entity = self.db.query(PrivatePatient).filter(PrivatePatient.id == patient_id).first()

        if entity is None:
            logger.warning(f"Patient reference not found: {kind} {patient_id}")
            raise NotFound("Patient not found", field="patient")

        return PatientReference(kind=kind, id=patient_id, entity=entity)

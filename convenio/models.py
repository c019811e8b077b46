from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .shared.time_utils import utcnow

CONSULTATION_STATUSES = ("scheduled", "confirmed", "completed", "cancelled")
SUBSCRIPTION_STATUSES = ("pending", "active", "expired")


class User(Base):
    """Member, professional or admin account (owned by the identity service)"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    cpf = Column(String(11), unique=True, nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)
    roles = Column(JSON, default=lambda: ["client"], nullable=False)  # client, professional, admin
    subscription_status = Column(String(20), default="pending")  # pending, active, expired
    subscription_expiry = Column(DateTime, nullable=True)
    category_name = Column(String(100), nullable=True)  # professionals only
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    dependents = relationship("Dependent", back_populates="user")

    def has_role(self, role: str) -> bool:
        return role in (self.roles or [])


class Dependent(Base):
    __tablename__ = "dependents"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    cpf = Column(String(11), unique=True, nullable=False)
    subscription_status = Column(String(20), default="pending")
    subscription_expiry = Column(DateTime, nullable=True)
    billing_amount = Column(Numeric(10, 2), default=50)
    activated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="dependents")


class PrivatePatient(Base):
    """A professional's own (non-convenio) patient"""

    __tablename__ = "private_patients"

    id = Column(Integer, primary_key=True, index=True)
    professional_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    cpf = Column(String(11), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class AttendanceLocation(Base):
    __tablename__ = "attendance_locations"

    id = Column(Integer, primary_key=True, index=True)
    professional_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    address = Column(Text, nullable=True)
    is_default = Column(Boolean, default=False)
    created_at = Column(DateTime, server_default=func.now())


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    base_price = Column(Numeric(10, 2), nullable=False)
    category_id = Column(Integer, nullable=True)
    is_base_service = Column(Boolean, default=False)
    created_at = Column(DateTime, server_default=func.now())


class Consultation(Base):
    """A single appointment on a professional's agenda"""

    __tablename__ = "consultations"

    id = Column(Integer, primary_key=True, index=True)
    # Patient reference: exactly one of the three is set
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    dependent_id = Column(Integer, ForeignKey("dependents.id"), nullable=True)
    private_patient_id = Column(Integer, ForeignKey("private_patients.id"), nullable=True)

    professional_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    location_id = Column(Integer, ForeignKey("attendance_locations.id"), nullable=True)
    value = Column(Numeric(10, 2), nullable=False)
    date = Column(DateTime, nullable=False, index=True)  # UTC instant
    status = Column(String(20), default="scheduled", nullable=False, index=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)

    service = relationship("Service")
    location = relationship("AttendanceLocation")
    member = relationship("User", foreign_keys=[user_id])
    dependent = relationship("Dependent")
    private_patient = relationship("PrivatePatient")
    professional = relationship("User", foreign_keys=[professional_id])

    __table_args__ = (
        CheckConstraint(
            "(user_id IS NOT NULL AND dependent_id IS NULL AND private_patient_id IS NULL) OR "
            "(user_id IS NULL AND dependent_id IS NOT NULL AND private_patient_id IS NULL) OR "
            "(user_id IS NULL AND dependent_id IS NULL AND private_patient_id IS NOT NULL)",
            name="check_patient_type",
        ),
        CheckConstraint("value > 0", name="check_consultation_value_positive"),
    )


class SchedulingAccess(Base):
    """Time-boxed entitlement to the agenda; at most one active row per professional"""

    __tablename__ = "scheduling_access"

    id = Column(Integer, primary_key=True, index=True)
    professional_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    granted_by = Column(Integer, ForeignKey("users.id"), nullable=True)  # null = self-service payment
    starts_at = Column(DateTime, default=utcnow)
    expires_at = Column(DateTime, nullable=False)
    reason = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    professional = relationship("User", foreign_keys=[professional_id])
    granter = relationship("User", foreign_keys=[granted_by])


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(50), default="info")  # info, success, warning
    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)

"""
Payment Record Models for convenio billing purposes
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from .database import Base
from .shared.time_utils import utcnow


class PaymentRecordMixin:
    """Columns shared by every payment purpose table"""

    id = Column(Integer, primary_key=True, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(String(50), nullable=True)  # credit_card, pix, ticket, ...
    status = Column(String(20), default="pending", nullable=False)  # pending, approved, rejected, ...

    # Correlation token echoed back by the gateway as external_reference
    payment_reference = Column(String(255), unique=True, nullable=False, index=True)
    mp_preference_id = Column(String(255), nullable=True, index=True)
    # Set on settlement; unique so a gateway payment can settle at most one record
    mp_payment_id = Column(String(255), unique=True, nullable=True)

    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    # Subclasses set owner_column to the name of their owning entity column


class ClientPayment(PaymentRecordMixin, Base):
    """Member subscription payment"""

    __tablename__ = "client_payments"
    owner_column = "user_id"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)


class DependentPayment(PaymentRecordMixin, Base):
    """Dependent activation payment"""

    __tablename__ = "dependent_payments"
    owner_column = "dependent_id"

    dependent_id = Column(
        Integer, ForeignKey("dependents.id", ondelete="CASCADE"), nullable=False, index=True
    )


class ProfessionalPayment(PaymentRecordMixin, Base):
    """Professional settlement (repasse) paid to the convenio"""

    __tablename__ = "professional_payments"
    owner_column = "professional_id"

    professional_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )


class AgendaPayment(PaymentRecordMixin, Base):
    """Scheduling access purchase"""

    __tablename__ = "agenda_payments"
    owner_column = "professional_id"

    professional_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    duration_days = Column(Integer, nullable=False)

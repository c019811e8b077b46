"""Billing repository - Database operations for payment records and settlement targets"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Dependent, User
from ...models_payment import AgendaPayment, ClientPayment, DependentPayment, ProfessionalPayment
from .correlation import PaymentPurpose

PAYMENT_MODELS = {
    PaymentPurpose.SUBSCRIPTION: ClientPayment,
    PaymentPurpose.DEPENDENT: DependentPayment,
    PaymentPurpose.PROFESSIONAL: ProfessionalPayment,
    PaymentPurpose.AGENDA: AgendaPayment,
}


class BillingRepository:
    """Repository for billing database operations"""

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_dependent_for_member(db: Session, dependent_id: int, member_id: int) -> Optional[Dependent]:
        """Get a dependent only if it belongs to the member"""
        return (
            db.query(Dependent)
            .filter(Dependent.id == dependent_id, Dependent.user_id == member_id)
            .first()
        )

    @staticmethod
    def get_dependent(db: Session, dependent_id: int) -> Optional[Dependent]:
        return db.query(Dependent).filter(Dependent.id == dependent_id).first()

    @staticmethod
    def create_pending_payment(
        db: Session,
        purpose: PaymentPurpose,
        owner_id: int,
        amount,
        token: str,
        preference_id: str,
        **extra,
    ):
        """Persist a pending payment record carrying the correlation token"""
        model = PAYMENT_MODELS[purpose]
        record = model(
            amount=amount,
            status="pending",
            payment_reference=token,
            mp_preference_id=preference_id,
            **{model.owner_column: owner_id},
            **extra,
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    @staticmethod
    def get_payment_by_token(db: Session, purpose: PaymentPurpose, token: str):
        model = PAYMENT_MODELS[purpose]
        return db.query(model).filter(model.payment_reference == token).first()

    @staticmethod
    def claim_pending_payment(
        db: Session,
        purpose: PaymentPurpose,
        token: str,
        mp_payment_id: str,
        payment_method: Optional[str],
        processed_at: datetime,
    ) -> int:
        """
        Conditionally mark a pending record approved (no commit).

        Returns the number of affected rows: 1 when this call won the
        settlement, 0 when the record is missing or already settled.
        """
        model = PAYMENT_MODELS[purpose]
        return (
            db.query(model)
            .filter(model.payment_reference == token, model.status == "pending")
            .update(
                {
                    model.status: "approved",
                    model.mp_payment_id: mp_payment_id,
                    model.payment_method: payment_method,
                    model.processed_at: processed_at,
                },
                synchronize_session=False,
            )
        )

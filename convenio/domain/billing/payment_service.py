"""
Payment intent issuer

Builds MercadoPago checkout preferences for the four payment purposes and
records a pending payment carrying the same correlation token the gateway
will echo back as external_reference.
"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ...config import CheckoutSettings
from ...errors import InvalidInput, NotFound, SubscriptionAlreadyActive
from ...models import Dependent, User
from ...shared.validators import to_money
from ..patients import effective_subscription_status
from .correlation import PaymentPurpose, build_token
from .mercadopago_service import MercadoPagoService
from .repository import BillingRepository

logger = logging.getLogger(__name__)

MAX_AGENDA_DURATION_DAYS = 365


class PaymentIntentService:
    """Service issuing checkout preferences and pending payment records"""

    def __init__(self, db: Session, gateway: MercadoPagoService, settings: CheckoutSettings):
        self.db = db
        self.gateway = gateway
        self.settings = settings

    def _build_preference(
        self,
        purpose: PaymentPurpose,
        token: str,
        title: str,
        description: str,
        amount: Decimal,
        payer: User,
    ) -> dict:
        return {
            "items": [
                {
                    "id": purpose.value,
                    "title": title,
                    "description": description,
                    "quantity": 1,
                    "currency_id": self.settings.currency,
                    "unit_price": float(amount),
                }
            ],
            "payer": {
                "name": payer.name,
                "email": payer.email or f"user{payer.id}@temp.com",
                "identification": {"type": "CPF", "number": payer.cpf},
            },
            "back_urls": self.settings.back_urls(purpose.value),
            "auto_return": "approved",
            "notification_url": self.settings.notification_url,
            "external_reference": token,
        }

    async def _issue(
        self,
        purpose: PaymentPurpose,
        owner_id: int,
        payer: User,
        amount: Decimal,
        title: str,
        description: str,
        duration_days: Optional[int] = None,
    ) -> dict:
        # One token for both the preference and the record
        token = build_token(purpose, owner_id, duration_days=duration_days)
        preference = self._build_preference(purpose, token, title, description, amount, payer)

        # Gateway first: on failure nothing is persisted
        result = await self.gateway.create_preference(preference)

        extra = {"duration_days": duration_days} if purpose is PaymentPurpose.AGENDA else {}
        try:
            BillingRepository.create_pending_payment(
                self.db,
                purpose,
                owner_id=owner_id,
                amount=amount,
                token=token,
                preference_id=result["preference_id"],
                **extra,
            )
        except Exception:
            self.db.rollback()
            logger.error(f"Failed to record pending {purpose.value} payment {token}")
            raise

        logger.info(
            f"Issued {purpose.value} payment intent {token} "
            f"(preference={result['preference_id']}, amount={amount})"
        )
        return result

    async def subscription(self, member: User) -> dict:
        status = effective_subscription_status(member.subscription_status, member.subscription_expiry)
        if status == "active":
            raise SubscriptionAlreadyActive("User already has an active subscription")

        return await self._issue(
            PaymentPurpose.SUBSCRIPTION,
            owner_id=member.id,
            payer=member,
            amount=self.settings.subscription_price,
            title="Assinatura do Cartão Convênio",
            description="Ativação da assinatura do cartão de convênio",
        )

    async def dependent_activation(self, member: User, dependent_id: int) -> dict:
        dependent: Optional[Dependent] = BillingRepository.get_dependent_for_member(
            self.db, dependent_id, member.id
        )
        if not dependent:
            logger.warning(f"Dependent {dependent_id} not found for member {member.id}")
            raise NotFound("Dependent not found")

        status = effective_subscription_status(
            dependent.subscription_status, dependent.subscription_expiry
        )
        if status == "active":
            raise SubscriptionAlreadyActive("Dependent is already active")

        return await self._issue(
            PaymentPurpose.DEPENDENT,
            owner_id=dependent.id,
            payer=member,
            amount=self.settings.dependent_price,
            title=f"Ativação de Dependente - {dependent.name}",
            description="Ativação de dependente no cartão de convênio",
        )

    async def professional_settlement(self, professional: User, amount) -> dict:
        value = to_money(amount)
        if value is None or value <= 0:
            raise InvalidInput("Amount must be greater than zero", field="amount")

        return await self._issue(
            PaymentPurpose.PROFESSIONAL,
            owner_id=professional.id,
            payer=professional,
            amount=value,
            title="Repasse ao Convênio",
            description="Pagamento de repasse ao convênio",
        )

    async def agenda_access(self, professional: User, duration_days: Optional[int] = None) -> dict:
        if duration_days is None:
            duration_days = self.settings.agenda_default_duration_days
        if not 1 <= duration_days <= MAX_AGENDA_DURATION_DAYS:
            raise InvalidInput(
                f"duration_days must be between 1 and {MAX_AGENDA_DURATION_DAYS}",
                field="duration_days",
            )

        return await self._issue(
            PaymentPurpose.AGENDA,
            owner_id=professional.id,
            payer=professional,
            amount=self.settings.agenda_access_price,
            title="Acesso à Agenda",
            description=f"Acesso ao sistema de agendamentos por {duration_days} dias",
            duration_days=duration_days,
        )

    def subscription_status(self, user: User) -> dict:
        """Effective subscription status of a member (lazy expiry)"""
        return {
            "subscription_status": effective_subscription_status(
                user.subscription_status, user.subscription_expiry
            ),
            "subscription_expiry": user.subscription_expiry,
        }

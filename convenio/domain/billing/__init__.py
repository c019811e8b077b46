"""Payment Intent Issuer and Webhook Reconciler"""

from .correlation import PaymentPurpose, build_token, parse_token
from .mercadopago_service import MercadoPagoService
from .payment_service import PaymentIntentService
from .webhook_service import WebhookReconciler, parse_notification

__all__ = [
    "MercadoPagoService",
    "PaymentIntentService",
    "PaymentPurpose",
    "WebhookReconciler",
    "build_token",
    "parse_notification",
    "parse_token",
]

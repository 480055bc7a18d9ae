"""
Adaptateur Stripe: Checkout Session comme ordre de paiement.

- create_payment_order: stripe.checkout.Session.create (montant en centimes, clé d'idempotence du paiement transmise à Stripe)
- verify_payment_status: stripe.checkout.Session.retrieve
- process_webhook: Webhook.construct_event (signature Stripe-Signature + STRIPE_WEBHOOK_SECRET)
Erreurs: APIConnectionError -> GatewayTimeoutError (réessayable), autres StripeError -> IntegrationError.
"""
import json
import logging
from typing import Any, Dict, FrozenSet, Mapping, Optional

import stripe

from internhub.config import (
    CHECKOUT_CANCEL_URL,
    CHECKOUT_SUCCESS_URL,
    GATEWAY_TIMEOUT_SECONDS,
    STRIPE_SECRET_KEY,
    STRIPE_WEBHOOK_SECRET,
)
from internhub.errors import GatewayTimeoutError, IntegrationError, ValidationError
from internhub.models import PaymentStatus
from internhub.utils.money import to_minor_units

from .base import Feature, GatewayProvider, PaymentOrderRequest, PaymentOrderResult, WebhookResult

logger = logging.getLogger(__name__)

# type d'événement -> statut de paiement
EVENT_STATUS = {
    "checkout.session.async_payment_succeeded": PaymentStatus.SUCCESS,
    "checkout.session.async_payment_failed": PaymentStatus.FAILED,
    "checkout.session.expired": PaymentStatus.CANCELLED,
}


def session_status(session: Mapping[str, Any]) -> PaymentStatus:
    if session.get("payment_status") in ("paid", "no_payment_required"):
        return PaymentStatus.SUCCESS
    if session.get("status") == "expired":
        return PaymentStatus.CANCELLED
    return PaymentStatus.PROCESSING


def _translate(e: Exception, action: str) -> IntegrationError:
    if isinstance(e, stripe.APIConnectionError):
        return GatewayTimeoutError(
            f"stripe {action} timed out: {e}",
            hint="Payment provider is not responding, please retry",
            details={"provider": "stripe"},
        )
    return IntegrationError(
        f"stripe {action} failed: {e}",
        hint="Payment provider error, please retry later",
        details={"provider": "stripe"},
    )


class StripeProvider(GatewayProvider):
    def __init__(
        self,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        timeout: float = GATEWAY_TIMEOUT_SECONDS,
    ) -> None:
        self.api_key = STRIPE_SECRET_KEY if api_key is None else api_key
        self.webhook_secret = STRIPE_WEBHOOK_SECRET if webhook_secret is None else webhook_secret
        self.timeout = timeout

    def provider_name(self) -> str:
        return "stripe"

    def supported_features(self) -> FrozenSet[Feature]:
        return frozenset({Feature.PAYMENT_LINK, Feature.VERIFY, Feature.WEBHOOK})

    def initialize(self) -> None:
        """Configure le module stripe (clé + client HTTP borné par le timeout)."""
        if not self.api_key:
            raise IntegrationError(
                "stripe is not configured (STRIPE_SECRET_KEY missing)",
                hint="Payment provider not configured",
                details={"provider": "stripe"},
            )
        stripe.api_key = self.api_key
        stripe.default_http_client = stripe.RequestsClient(timeout=self.timeout)

    def create_payment_order(self, request: PaymentOrderRequest) -> PaymentOrderResult:
        metadata = {"payment_id": request.payment_id}
        metadata.update({k: str(v) for k, v in (request.metadata or {}).items()})
        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                line_items=[{
                    "quantity": 1,
                    "price_data": {
                        "currency": request.currency.lower(),
                        "unit_amount": to_minor_units(request.amount),
                        "product_data": {"name": request.description or "Internship enrollment"},
                    },
                }],
                success_url=request.success_url or CHECKOUT_SUCCESS_URL,
                cancel_url=request.cancel_url or CHECKOUT_CANCEL_URL,
                client_reference_id=request.payment_id,
                metadata=metadata,
                idempotency_key=request.idempotency_key,
            )
        except stripe.StripeError as e:
            logger.exception("stripe.create_session failed payment_id=%s", request.payment_id)
            raise _translate(e, "create_session") from e

        session = dict(session)
        return PaymentOrderResult(
            provider_payment_id=session.get("id") or "",
            redirect_url=session.get("url"),
            status=session_status(session),
            raw=session,
        )

    def verify_payment_status(self, provider_payment_id: str) -> PaymentStatus:
        try:
            session = stripe.checkout.Session.retrieve(provider_payment_id)
        except stripe.StripeError as e:
            logger.exception("stripe.get_session failed session_id=%s", provider_payment_id)
            raise _translate(e, "get_session") from e
        return session_status(dict(session))

    def process_webhook(self, payload: bytes, headers: Mapping[str, str]) -> WebhookResult:
        event = self._parse_event(payload, headers)
        event_name = event.get("type") or ""
        obj = (event.get("data") or {}).get("object") or {}
        metadata = obj.get("metadata") or {}
        if event_name == "checkout.session.completed":
            # moyens de paiement différés: session terminée mais encore "unpaid"
            status: Optional[PaymentStatus] = session_status(obj)
        else:
            status = EVENT_STATUS.get(event_name)
        return WebhookResult(
            event_name=event_name,
            event_id=event.get("id"),
            payload=dict(obj),
            provider_payment_id=obj.get("id"),
            status=status,
            payment_id=metadata.get("payment_id") or obj.get("client_reference_id"),
        )

    def _parse_event(self, payload: bytes, headers: Mapping[str, str]) -> Dict[str, Any]:
        if not self.webhook_secret:
            # dev local sans secret: payload JSON brut, non signé
            logger.warning("stripe.webhook STRIPE_WEBHOOK_SECRET missing, signature not verified")
            try:
                return json.loads(payload or b"{}")
            except ValueError as e:
                raise ValidationError("invalid stripe webhook payload", hint="Invalid webhook payload") from e

        sig_header = headers.get("stripe-signature") or headers.get("Stripe-Signature")
        try:
            return stripe.Webhook.construct_event(payload, sig_header, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            raise ValidationError("invalid stripe webhook payload", hint="Invalid webhook payload") from e

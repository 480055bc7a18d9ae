"""
Contrat commun des passerelles de paiement.

L'orchestrateur ne dépend que de GatewayProvider: un fournisseur concret
(Stripe, ...) est résolu par son nom via le registre au moment de l'appel.
Les erreurs d'appel sont des IntegrationError (GatewayTimeoutError si hors délai).
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional

from internhub.models import PaymentStatus


class Feature(str, Enum):
    PAYMENT_LINK = "payment_link"
    VERIFY = "verify"
    WEBHOOK = "webhook"
    REFUND = "refund"


@dataclass
class PaymentOrderRequest:
    payment_id: str
    amount: Decimal
    currency: str
    idempotency_key: str
    description: str = ""
    customer_id: Optional[str] = None
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class PaymentOrderResult:
    provider_payment_id: str
    redirect_url: Optional[str]
    status: PaymentStatus
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookResult:
    event_name: str
    event_id: Optional[str]
    payload: Dict[str, Any]
    provider_payment_id: Optional[str] = None
    # None: événement sans effet sur l'état du paiement
    status: Optional[PaymentStatus] = None
    payment_id: Optional[str] = None


class GatewayProvider(ABC):
    @abstractmethod
    def provider_name(self) -> str: ...

    @abstractmethod
    def supported_features(self) -> FrozenSet[Feature]: ...

    @abstractmethod
    def initialize(self) -> None: ...

    @abstractmethod
    def create_payment_order(self, request: PaymentOrderRequest) -> PaymentOrderResult: ...

    @abstractmethod
    def verify_payment_status(self, provider_payment_id: str) -> PaymentStatus: ...

    @abstractmethod
    def process_webhook(self, payload: bytes, headers: Mapping[str, str]) -> WebhookResult: ...

    def supports(self, feature: Feature) -> bool:
        return feature in self.supported_features()

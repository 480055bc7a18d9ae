"""
Registre des passerelles: nom -> fournisseur.
Un fournisseur est initialisé au premier get(), une seule fois.
"""
from typing import Dict, List, Optional, Set
import logging
import threading

from internhub.config import DEFAULT_PAYMENT_GATEWAY
from internhub.errors import NotFoundError, ValidationError

from .base import GatewayProvider

logger = logging.getLogger(__name__)


class GatewayRegistry:
    def __init__(self) -> None:
        self._providers: Dict[str, GatewayProvider] = {}
        self._initialized: Set[str] = set()
        self._lock = threading.Lock()

    def register(self, provider: GatewayProvider) -> None:
        name = provider.provider_name().strip().lower()
        with self._lock:
            self._providers[name] = provider
            self._initialized.discard(name)
        logger.info("gateways.register provider=%s", name)

    def unregister(self, name: str) -> None:
        key = (name or "").strip().lower()
        with self._lock:
            self._providers.pop(key, None)
            self._initialized.discard(key)

    def get(self, name: Optional[str] = None) -> GatewayProvider:
        key = (name or DEFAULT_PAYMENT_GATEWAY or "").strip().lower()
        if not key:
            raise ValidationError(
                "payment gateway provider is required",
                hint="Please choose a payment provider",
                details={"field": "provider"},
            )
        with self._lock:
            provider = self._providers.get(key)
            if provider is None:
                raise NotFoundError(
                    f"payment gateway provider {key} is not registered",
                    hint="Payment provider not available",
                    details={"provider": key},
                )
            if key not in self._initialized:
                provider.initialize()
                self._initialized.add(key)
        return provider

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._providers)


registry = GatewayRegistry()


def get_provider(name: Optional[str] = None) -> GatewayProvider:
    return registry.get(name)

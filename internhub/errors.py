"""
Taxonomie des erreurs métier.

Chaque erreur porte:
- code: identifiant stable, lisible par une machine (mapping HTTP côté transport)
- message: description courte pour les logs
- hint: message destiné à l'utilisateur final
- details: contexte additionnel (ex: {"reason": "expired", "code": "WELCOME10"})
"""
from typing import Any, Dict, Optional


class ServiceError(Exception):
    code = "internal_error"
    http_status = 500

    def __init__(
        self,
        message: str,
        *,
        hint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint or message
        self.details: Dict[str, Any] = dict(details or {})

    @property
    def reason(self) -> Optional[str]:
        return self.details.get("reason")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "hint": self.hint,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ValidationError(ServiceError):
    code = "validation_error"
    http_status = 400


class NotFoundError(ServiceError):
    code = "not_found"
    http_status = 404


class AlreadyExistsError(ServiceError):
    code = "already_exists"
    http_status = 409


class PermissionDeniedError(ServiceError):
    code = "permission_denied"
    http_status = 403


class InvalidOperationError(ServiceError):
    code = "invalid_operation"
    http_status = 400


class IntegrationError(ServiceError):
    code = "integration_error"
    http_status = 502


class GatewayTimeoutError(IntegrationError):
    """Appel passerelle hors délai: échec réessayable, pas un refus définitif."""
    code = "timeout"
    http_status = 504


class DatabaseError(ServiceError):
    code = "database_error"
    http_status = 500


class InternalError(ServiceError):
    code = "internal_error"
    http_status = 500


# Raisons d'échec du validateur de coupons (details["reason"])
REASON_NOT_FOUND = "not_found"
REASON_INACTIVE = "inactive"
REASON_NOT_YET_VALID = "not_yet_valid"
REASON_EXPIRED = "expired"
REASON_BELOW_MINIMUM_ORDER = "below_minimum_order"
REASON_MAX_USES_EXCEEDED = "max_uses_exceeded"
REASON_NOT_COMBINABLE = "not_combinable"

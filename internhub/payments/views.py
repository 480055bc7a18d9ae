import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from internhub.enrollments.schemas import EnrollmentResponse, to_response
from internhub.enrollments.service import EnrollmentService
from internhub.infra.database import get_db
from internhub.utils.security import require_admin, require_user

from .schemas import PaymentOut, WebhookResponse
from .service import PaymentService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])


def get_enrollment_service(db: Session = Depends(get_db)) -> EnrollmentService:
    return EnrollmentService(db)


def get_payment_service(db: Session = Depends(get_db)) -> PaymentService:
    return PaymentService(db)


@router.post("/webhook/{provider}", include_in_schema=False, response_model=WebhookResponse)
async def payment_webhook(
    provider: str,
    request: Request,
    service: EnrollmentService = Depends(get_enrollment_service),
):
    """
    Webhook passerelle (ex: /webhook/stripe).
    - Signature validée par le fournisseur (400 si invalide)
    - Événement connu: transition du paiement puis de l'inscription liée
    - Événement rejoué ou inconnu: {"status": "ignored"} (200, pas de nouvelle livraison)
    """
    payload = await request.body()
    # accès base synchrone (verrous de ligne): hors de la boucle d'événements
    result = await run_in_threadpool(service.handle_webhook, provider, payload, dict(request.headers))
    logger.info("payments.webhook provider=%s status=%s event=%s", provider, result.get("status"), result.get("event"))
    return result


@router.post("/{payment_id}/sync", response_model=EnrollmentResponse)
def sync_payment(
    payment_id: str,
    user: Dict[str, Any] = Depends(require_user),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    """Alternative sans webhook: interroge la passerelle puis finalise l'inscription."""
    return to_response(service.sync_payment(payment_id, user["id"]))


@router.get("/{payment_id}", response_model=PaymentOut)
def get_payment(
    payment_id: str,
    admin: Dict[str, Any] = Depends(require_admin),
    service: PaymentService = Depends(get_payment_service),
):
    return PaymentOut.model_validate(service.get(payment_id))

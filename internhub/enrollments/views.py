import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from internhub.infra.database import get_db
from internhub.utils.security import require_admin, require_user

from .schemas import EnrollmentResponse, InitializeEnrollmentRequest, to_response
from .service import EnrollmentService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/enrollments", tags=["Enrollments API"])


def get_enrollment_service(db: Session = Depends(get_db)) -> EnrollmentService:
    return EnrollmentService(db)


@router.post("/initialize", response_model=EnrollmentResponse)
def initialize_enrollment(
    body: InitializeEnrollmentRequest,
    user: Dict[str, Any] = Depends(require_user),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    """
    Démarre (ou reprend) une inscription payante ou gratuite.
    - Idempotent par (user, internship[, batch]): un second appel renvoie la même inscription
    - 409 si l'inscription est déjà complétée
    - 502/504 si la passerelle échoue: l'inscription reste consultable et l'appel peut être rejoué
    """
    result = service.initialize_enrollment(
        user_id=user["id"],
        internship_id=body.internship_id,
        batch_id=body.batch_id,
        discount_codes=body.discount_codes,
        provider=body.provider,
        success_url=body.success_url,
        cancel_url=body.cancel_url,
        metadata=body.metadata,
    )
    return to_response(result)


@router.get("", response_model=List[EnrollmentResponse])
def list_enrollments(
    limit: int = 50,
    offset: int = 0,
    user: Dict[str, Any] = Depends(require_user),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    enrollments = service.list_enrollments(user["id"], limit=limit, offset=offset)
    return [to_response(service.get_result(e.id, user["id"])) for e in enrollments]


@router.get("/{enrollment_id}", response_model=EnrollmentResponse)
def get_enrollment(
    enrollment_id: str,
    user: Dict[str, Any] = Depends(require_user),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    return to_response(service.get_result(enrollment_id, user["id"]))


@router.post("/{enrollment_id}/finalize", response_model=EnrollmentResponse)
def finalize_enrollment(
    enrollment_id: str,
    user: Dict[str, Any] = Depends(require_user),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    """Recopie le statut du paiement lié dans l'inscription (après redirection de la passerelle)."""
    return to_response(service.finalize_enrollment(enrollment_id, user["id"]))


@router.post("/{enrollment_id}/cancel", response_model=EnrollmentResponse)
def cancel_enrollment(
    enrollment_id: str,
    user: Dict[str, Any] = Depends(require_user),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    return to_response(service.cancel_enrollment(enrollment_id, user["id"]))


@router.post("/{enrollment_id}/refund", response_model=EnrollmentResponse)
def refund_enrollment(
    enrollment_id: str,
    admin: Dict[str, Any] = Depends(require_admin),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    logger.info("enrollments.refund requested id=%s by=%s", enrollment_id, admin.get("id"))
    return to_response(service.refund_enrollment(enrollment_id))

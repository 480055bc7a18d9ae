import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from internhub.carts.reconciler import reconciler
from internhub.gateways.registry import registry
from internhub.infra.database import engine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
def health_root():
    return {"ok": True}


@router.get("/details")
def health_details():
    """Base joignable, passerelles enregistrées, paniers en attente de réconciliation."""
    db_ok = True
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("health.database unreachable")
        db_ok = False
    body = {
        "ok": db_ok,
        "database": "up" if db_ok else "down",
        "gateways": registry.names(),
        "pending_cart_reconciliations": len(reconciler.pending()),
    }
    return JSONResponse(body, status_code=200 if db_ok else 503)

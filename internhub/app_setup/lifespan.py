"""
Lifespan FastAPI: initialisation des ressources partagées.
- Crée les tables manquantes (dev/SQLite; en production le schéma est migré à part)
- Enregistre les passerelles de paiement configurées
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from internhub import models  # noqa: F401  enregistre les tables sur Base.metadata
from internhub.config import LOG_LEVEL, STRIPE_SECRET_KEY
from internhub.gateways.registry import registry
from internhub.gateways.stripe_provider import StripeProvider
from internhub.infra.database import Base, engine


def register_gateways() -> None:
    if STRIPE_SECRET_KEY and "stripe" not in registry.names():
        registry.register(StripeProvider())


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("uvicorn.error")
    logging.getLogger("internhub").setLevel(LOG_LEVEL)

    Base.metadata.create_all(bind=engine)
    logger.info("Database ready (%s)", engine.url.render_as_string(hide_password=True))

    register_gateways()
    providers = registry.names()
    if providers:
        logger.info("Payment gateways registered: %s", ", ".join(providers))
    else:
        logger.warning("No payment gateway registered: paid enrollments will fail")
    yield

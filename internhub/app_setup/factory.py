"""
Factory d'application pour les entrypoints (ex: internhub.asgi).
Ordonne les étapes d'initialisation de manière lisible et testable.
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from internhub.config import CORS_ORIGINS
from .lifespan import lifespan
from .exceptions import register_exception_handlers
from .routers import register_routers


def register_basic_middlewares(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def create_app() -> FastAPI:
    """
    Construit l'app FastAPI avec le lifespan et enregistre:
      - middlewares de base (CORS)
      - gestionnaires d'exceptions (ServiceError -> JSON)
      - tous les routers (API v1, health)
    """
    app = FastAPI(title="InternHub Pricing & Enrollment", lifespan=lifespan)
    register_basic_middlewares(app)
    register_exception_handlers(app)
    register_routers(app)
    return app

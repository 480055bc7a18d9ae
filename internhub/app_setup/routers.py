"""
Registre central des routers (API v1, health).
"""
from fastapi import FastAPI

from internhub.carts import views as carts_views
from internhub.discounts import views as discounts_views
from internhub.enrollments import views as enrollments_views
from internhub.health.router import router as health_router
from internhub.payments import views as payments_views
from internhub.pricing import views as pricing_views


def register_routers(app: FastAPI) -> None:
    # API v1
    app.include_router(pricing_views.router)
    app.include_router(discounts_views.router)
    app.include_router(carts_views.router)
    app.include_router(enrollments_views.router)
    app.include_router(payments_views.router)
    # Health & monitoring
    app.include_router(health_router)

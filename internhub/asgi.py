"""
ASGI entrypoint: expose `app` pour les process managers (ex: uvicorn internhub.asgi:app).
Toute la configuration FastAPI est centralisée dans internhub.app_setup.factory.
"""
from internhub.app_setup.factory import create_app

app = create_app()

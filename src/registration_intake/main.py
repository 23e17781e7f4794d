"""ASGI entrypoint: ``uvicorn registration_intake.main:app``."""

from registration_intake.api import create_app

app = create_app()

"""
send2tg API - FastAPI Application

Main entry point for the REST API, e.g. ``uvicorn api.main:app``.
"""

from api.app import create_app

app = create_app()

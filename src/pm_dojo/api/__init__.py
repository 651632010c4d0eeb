"""
PM Dojo REST API

FastAPI-based REST API serving the question bank and aggregated podcast
intelligence to the practice app.
"""

from .main import app, create_app

__all__ = ["app", "create_app"]

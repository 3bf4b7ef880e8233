"""
asgi.py -- ASGI entry point for SegreGate.

Run with:  uvicorn asgi:app --reload

The browser client (client/) talks to this app over HTTP only and is not
mounted here.
"""

from api.main import app

__all__ = ["app"]

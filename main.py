# main.py
"""
Entry point for serving the clearance API.
Re-exports the FastAPI app from api/main.py, e.g. ``uvicorn main:app``.
"""

from api.main import app

__all__ = ["app"]

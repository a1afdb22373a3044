"""
FastAPI Backend for Site Fund Flow

Provides REST API endpoints over the fund flow services.
"""

from .main import app

__all__ = ["app"]

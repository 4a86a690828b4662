"""Connector API routes"""

from api.connector.googlesheets_routes import router as googlesheets_router

__all__ = ["googlesheets_router"]

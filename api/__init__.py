from fastapi import APIRouter

from api.connector import googlesheets_router

api_router = APIRouter()

api_router.include_router(googlesheets_router, prefix="/connectors/googlesheets", tags=["googlesheets"])

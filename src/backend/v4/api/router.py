import logging

from fastapi import APIRouter

from src.backend.v4.api.cost_report_router import cost_report_router

logger = logging.getLogger(__name__)

app_v4 = APIRouter(
    prefix="/api/v4",
    responses={404: {"description": "Not found"}},
)

app_v4.include_router(cost_report_router)

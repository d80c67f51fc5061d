# retailflow/api/routers/reports.py
from __future__ import annotations

from fastapi import APIRouter

from retailflow.api.problem import PROBLEM_RESPONSES
from retailflow.api.routers import reports_config_routes
from retailflow.api.routers import reports_routes

router = APIRouter(prefix="/reports", tags=["reports"], responses=PROBLEM_RESPONSES)


def _register_all_routes() -> None:
    reports_routes.register(router)
    reports_config_routes.register(router)


_register_all_routes()

__all__ = ["router"]

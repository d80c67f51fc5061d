# retailflow/api/routers/vendors.py
from __future__ import annotations

from fastapi import APIRouter

from retailflow.api.problem import PROBLEM_RESPONSES
from retailflow.api.routers import vendors_routes

router = APIRouter(prefix="/vendors", tags=["vendors"], responses=PROBLEM_RESPONSES)


def _register_all_routes() -> None:
    vendors_routes.register(router)


_register_all_routes()

__all__ = ["router"]

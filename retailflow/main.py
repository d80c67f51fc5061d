# retailflow/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from retailflow.config import flags
from retailflow.core.config import AppSettings, get_settings
from retailflow.core.logging import setup_logging
from retailflow.http_problem_handlers import register_exception_handlers
from retailflow.obs.metrics import PrometheusMiddleware
from retailflow.router_mount import mount_routers
from retailflow.services.container import build_container
from retailflow.services.payment_gateway import PaymentService

logger = logging.getLogger("retailflow")

APP_VERSION = "1.0.0"


def create_app(
    settings: Optional[AppSettings] = None,
    *,
    payments: Optional[PaymentService] = None,
) -> FastAPI:
    """
    应用工厂：
    - settings 不传时读环境变量 / .env
    - payments 可注入替身（测试用），默认用进程内模拟钱包
    """
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL, json=settings.JSON_LOG)

    container = build_container(settings, payments=payments)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("RetailFlow starting (env=%s, orders=%d)", settings.ENV, len(container.store))
        yield
        await container.shutdown()
        logger.info("RetailFlow stopped")

    app = FastAPI(
        title="RetailFlow",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://127.0.0.1:5173",
            "http://localhost:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if flags.ENABLE_METRICS_ENDPOINT:
        app.add_middleware(PrometheusMiddleware)

    register_exception_handlers(app)
    mount_routers(
        app,
        enable_dev_routes=settings.ENV.lower() == "dev" and flags.ENABLE_DEV_SEED,
        enable_metrics=flags.ENABLE_METRICS_ENDPOINT,
    )

    @app.get("/")
    async def root():
        return {"name": "RetailFlow", "version": APP_VERSION}

    return app


app = create_app()

# retailflow/router_mount.py
from __future__ import annotations

from fastapi import FastAPI


def mount_routers(app: FastAPI, *, enable_dev_routes: bool, enable_metrics: bool) -> None:
    from retailflow.api.routers.dev_seed import router as dev_seed_router
    from retailflow.api.routers.health import router as health_router
    from retailflow.api.routers.orders import router as orders_router
    from retailflow.api.routers.reports import router as reports_router
    from retailflow.api.routers.vendors import router as vendors_router
    from retailflow.obs.metrics import router as metrics_router

    # 订单 / 支付 / 履约 / 配送
    app.include_router(orders_router)
    app.include_router(vendors_router)

    # 报表 / 导出 / 自动刷新
    app.include_router(reports_router)

    # 观测
    app.include_router(health_router)
    if enable_metrics:
        app.include_router(metrics_router)

    # dev-only：只在 ENV=dev 时挂载
    if enable_dev_routes:
        app.include_router(dev_seed_router)

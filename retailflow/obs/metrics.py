# retailflow/obs/metrics.py
import time

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

http_requests_total = Counter("http_requests_total", "HTTP requests", ["method", "path", "code"])
http_request_duration = Histogram(
    "http_request_duration_seconds", "HTTP request duration seconds", ["method", "path"]
)

# 订单状态机：每次成功写入 +1（op = create / verification_verified / stage_packed / ...）
order_transitions_total = Counter(
    "order_transitions_total", "Order state transitions applied", ["op"]
)
order_errors_total = Counter("order_errors_total", "Order operation errors", ["code"])

export_jobs_total = Counter("export_jobs_total", "Export jobs by terminal status", ["status"])
report_refresh_total = Counter("report_refresh_total", "Report auto-refresh ticks", ["result"])


def _route_path(request) -> str:
    # 用路由模板而非原始 path，避免 /orders/123 这类高基数 label
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        path = _route_path(request)
        http_requests_total.labels(request.method, path, str(response.status_code)).inc()
        http_request_duration.labels(request.method, path).observe(elapsed)
        return response


router = APIRouter(tags=["ops"])


@router.get("/metrics")
def metrics() -> Response:
    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)

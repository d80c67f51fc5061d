# retailflow/http_problem_handlers.py
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Sequence

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from retailflow.api.problem import NextAction, ProblemDetail, make_problem
from retailflow.core.errors import OrderFlowError

logger = logging.getLogger("retailflow")

# 支付类错误统一给出“人工处理”兜底入口
MANUAL_PROCESSING: NextAction = {"action": "manual_processing", "label": "转人工处理"}


def _new_trace_id() -> str:
    return f"t_{uuid.uuid4().hex[:12]}"


def _request_ctx(req: Request) -> Dict[str, Any]:
    return {"path": getattr(req.url, "path", ""), "method": req.method}


def _validation_details(raw: Sequence[Any]) -> List[ProblemDetail]:
    details: List[ProblemDetail] = []
    for i, e in enumerate(raw):
        if not isinstance(e, dict):
            continue
        loc = ".".join(str(p) for p in e.get("loc") or ()) or f"validation[{i}]"
        details.append(
            {
                "type": "validation",
                "path": loc,
                "reason": str(e.get("msg") or e.get("type") or "invalid"),
            }
        )
    return details


def problem_from_order_error(req: Request, exc: OrderFlowError, trace_id: str) -> Dict[str, Any]:
    ctx = _request_ctx(req)
    ctx.update(jsonable_encoder(exc.context))
    detail: ProblemDetail = {"type": exc.kind, "reason": exc.message}
    if "order_id" in exc.context:
        detail["order_id"] = exc.context["order_id"]
    return make_problem(
        status_code=exc.status,
        error_code=exc.code,
        message=exc.message,
        context=ctx,
        details=[detail],
        next_actions=[MANUAL_PROCESSING] if exc.payment_related else None,
        trace_id=trace_id,
    )


def _problem_from_http_exc(req: Request, exc: HTTPException) -> Dict[str, Any]:
    """
    HTTPException.detail → Problem：
    - 已是 Problem：补齐 http_status / trace_id / context
    - list：当作 validation 详情
    - 其它：兜底为 http_error
    """
    status_code = int(exc.status_code)
    trace_id = _new_trace_id()
    ctx = _request_ctx(req)
    d = exc.detail

    if isinstance(d, dict) and "error_code" in d and "message" in d:
        out = dict(d)
        out.setdefault("http_status", status_code)
        out.setdefault("trace_id", trace_id)
        merged = dict(ctx)
        if isinstance(out.get("context"), dict):
            merged.update(out["context"])
        out["context"] = merged
        return out

    if isinstance(d, list):
        return make_problem(
            status_code=status_code,
            error_code="request_validation_error",
            message="请求参数不合法",
            context=ctx,
            details=_validation_details(d),
            trace_id=trace_id,
        )

    msg = str(d) if d is not None else "请求被拒绝"
    return make_problem(
        status_code=status_code,
        error_code="http_error",
        message=msg,
        context=ctx,
        details=[{"type": "state", "reason": msg}],
        trace_id=trace_id,
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(OrderFlowError)
    async def _order_flow_exc(req: Request, exc: OrderFlowError):
        trace_id = _new_trace_id()
        if exc.status >= 500:
            logger.warning("UPSTREAM[%s] %s: %s", trace_id, exc.code, exc.message)
        content = problem_from_order_error(req, exc, trace_id)
        return JSONResponse(status_code=exc.status, content=content)

    @app.exception_handler(Exception)
    async def _unhandled_exc(req: Request, exc: Exception):
        trace_id = _new_trace_id()
        logger.exception("UNHANDLED_EXC[%s]: %s", trace_id, exc)
        content = make_problem(
            status_code=500,
            error_code="internal_error",
            message="系统异常，请稍后重试",
            context=_request_ctx(req),
            trace_id=trace_id,
        )
        return JSONResponse(status_code=500, content=content)

    @app.exception_handler(RequestValidationError)
    async def _validation_exc(req: Request, exc: RequestValidationError):
        content = make_problem(
            status_code=422,
            error_code="request_validation_error",
            message="请求参数不合法",
            context=_request_ctx(req),
            details=_validation_details(exc.errors()),
            trace_id=_new_trace_id(),
        )
        return JSONResponse(status_code=422, content=content)

    @app.exception_handler(PydanticValidationError)
    async def _model_validation_exc(req: Request, exc: PydanticValidationError):
        content = make_problem(
            status_code=422,
            error_code="request_validation_error",
            message="数据不合法",
            context=_request_ctx(req),
            details=_validation_details(exc.errors(include_url=False)),
            trace_id=_new_trace_id(),
        )
        return JSONResponse(status_code=422, content=content)

    @app.exception_handler(HTTPException)
    async def _http_exc(req: Request, exc: HTTPException):
        content = _problem_from_http_exc(req, exc)
        return JSONResponse(status_code=int(exc.status_code), content=content)

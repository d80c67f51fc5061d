# retailflow/api/problem.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, TypedDict

from fastapi import HTTPException
from pydantic import BaseModel, Field


class ProblemDetail(TypedDict, total=False):
    type: str  # validation|state|not_found|upstream
    path: str  # e.g. body.items[0].price
    reason: str
    order_id: int


class NextAction(TypedDict, total=False):
    action: str
    label: str


class Problem(BaseModel):
    """
    统一错误体：所有 4xx/5xx 都按这个形状返回，前端只认 error_code。
    """

    error_code: str
    message: str
    http_status: int
    context: Optional[Dict[str, Any]] = None
    details: Optional[List[Dict[str, Any]]] = None
    next_actions: Optional[List[Dict[str, str]]] = None
    trace_id: Optional[str] = Field(default=None, description="日志检索用")


# 挂到 APIRouter(responses=...) 上，OpenAPI 里能看到错误体
PROBLEM_RESPONSES: Dict[int | str, Dict[str, Any]] = {
    404: {"model": Problem, "description": "资源不存在"},
    409: {"model": Problem, "description": "状态冲突"},
    422: {"model": Problem, "description": "参数或数据不合法"},
    502: {"model": Problem, "description": "支付网关失败"},
}


def make_problem(
    *,
    status_code: int,
    error_code: str,
    message: str,
    context: Optional[Dict[str, Any]] = None,
    details: Optional[Sequence[ProblemDetail]] = None,
    next_actions: Optional[Sequence[NextAction]] = None,
    trace_id: Optional[str] = None,
) -> Dict[str, Any]:
    p = Problem(
        error_code=str(error_code),
        message=str(message),
        http_status=int(status_code),
        context=context or None,
        details=[dict(d) for d in details] if details else None,
        next_actions=[dict(a) for a in next_actions] if next_actions else None,
        trace_id=trace_id,
    )
    return p.model_dump(exclude_none=True)


def raise_problem(
    *,
    status_code: int,
    error_code: str,
    message: str,
    context: Optional[Dict[str, Any]] = None,
    details: Optional[Sequence[ProblemDetail]] = None,
) -> None:
    raise HTTPException(
        status_code=int(status_code),
        detail=make_problem(
            status_code=status_code,
            error_code=error_code,
            message=message,
            context=context,
            details=details,
        ),
    )

# tests/_problem.py
from __future__ import annotations

from typing import Any, Dict

import httpx


def assert_problem(resp: httpx.Response, status: int, error_code: str) -> Dict[str, Any]:
    """
    断言响应是统一 Problem 形状，并返回 body 供进一步断言。
    """
    assert resp.status_code == status, resp.text
    body = resp.json()
    assert body["error_code"] == error_code, body
    assert body["http_status"] == status
    assert isinstance(body["message"], str) and body["message"]
    assert body.get("trace_id", "").startswith("t_")
    return body

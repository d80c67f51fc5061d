"""
RetailFlow Feature Flags
------------------------
跨边界的可选能力统一在这里开关，可通过环境变量启用/关闭：
  export ENABLE_METRICS_ENDPOINT=false
  export ENABLE_DEV_SEED=false
"""

from __future__ import annotations
import os


def _bool(name: str, default: bool = False) -> bool:
    """读取布尔环境变量。"""
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "yes", "on"}


# /metrics 暴露 prometheus 文本格式
ENABLE_METRICS_ENDPOINT = _bool("ENABLE_METRICS_ENDPOINT", True)

# 允许 dev 环境通过 HTTP 重新灌入种子订单
ENABLE_DEV_SEED = _bool("ENABLE_DEV_SEED", True)

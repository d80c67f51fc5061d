# retailflow/api/__init__.py
"""
API package.

- 这里不做任何重导出
- 路由挂载由 `retailflow/main.py` 的 create_app 负责
"""

__all__ = []

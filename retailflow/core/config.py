# retailflow/core/config.py
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    全局应用配置（进程内内存存储，不依赖数据库）
    """

    # 运行环境
    ENV: str = Field(default="dev")
    DEBUG: bool = Field(default=True)

    # 日志
    LOG_LEVEL: str = Field(default="INFO")
    JSON_LOG: bool = Field(default=False)

    # 模拟延迟：store 读写前的 I/O 挂起点（毫秒）
    STORE_LATENCY_MS: int = Field(default=0, ge=0)

    # 支付核验通过后，自动 pending → confirmed 的延迟（秒）
    AUTO_CONFIRM_DELAY_SEC: float = Field(default=0.1, ge=0.0)

    # 导出任务每个阶段的模拟耗时（秒）
    EXPORT_STEP_DELAY_SEC: float = Field(default=0.5, ge=0.0)
    EXPORT_STORAGE_HOST: str = Field(default="freshmart.com")

    # 报表自动刷新
    DEFAULT_REFRESH_INTERVAL_SEC: int = Field(default=15, gt=0)
    SCHEDULER_TIMEZONE: str = Field(default="UTC")

    # 启动时从 fixture 重新灌入订单
    SEED_ORDERS: bool = Field(default=True)
    SEED_FIXTURE_PATH: str | None = Field(
        default=None,
        description="订单种子 JSON 路径；不填则使用包内 fixtures/orders.json",
    )

    # 模拟钱包初始余额
    WALLET_OPENING_BALANCE: float = Field(default=25000.0, ge=0.0)

    # 允许从 .env 文件读取配置
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> AppSettings:
    """全局单例设置入口。"""
    return AppSettings()

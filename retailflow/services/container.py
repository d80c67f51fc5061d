# retailflow/services/container.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from retailflow.core.config import AppSettings
from retailflow.core.scheduler import build_scheduler
from retailflow.services.delivery_sync import DeliverySync
from retailflow.services.fulfillment_workflow import FulfillmentWorkflow
from retailflow.services.order_state_machine import OrderStateMachine
from retailflow.services.order_store import OrderStore, load_seed_orders
from retailflow.services.payment_gateway import PaymentService, SimulatedPaymentService
from retailflow.services.payment_lifecycle import PaymentLifecycle
from retailflow.services.reporting_engine import ReportingEngine

logger = logging.getLogger("retailflow")


@dataclass
class ServiceContainer:
    """
    进程内全部服务实例；由 create_app 构建一次，挂在 app.state.container 上。
    """

    settings: AppSettings
    store: OrderStore
    payments: PaymentService
    orders: OrderStateMachine
    reporting: ReportingEngine

    @property
    def payment(self) -> PaymentLifecycle:
        return self.orders.payment

    @property
    def fulfillment(self) -> FulfillmentWorkflow:
        return self.orders.fulfillment

    @property
    def delivery(self) -> DeliverySync:
        return self.orders.delivery

    def reseed(self) -> int:
        rows = load_seed_orders(self.settings.SEED_FIXTURE_PATH)
        return self.orders.seed(rows)

    async def shutdown(self) -> None:
        self.reporting.shutdown()
        await self.orders.drain_followups()


def build_container(
    settings: AppSettings, *, payments: Optional[PaymentService] = None
) -> ServiceContainer:
    store = OrderStore(latency_ms=settings.STORE_LATENCY_MS)
    if payments is None:
        payments = SimulatedPaymentService(
            opening_balance=settings.WALLET_OPENING_BALANCE,
            latency_ms=settings.STORE_LATENCY_MS,
        )

    orders = OrderStateMachine(
        store, payments, auto_confirm_delay=settings.AUTO_CONFIRM_DELAY_SEC
    )
    reporting = ReportingEngine(
        orders,
        payments,
        scheduler_factory=lambda loop: build_scheduler(settings, loop),
        export_step_delay=settings.EXPORT_STEP_DELAY_SEC,
        storage_host=settings.EXPORT_STORAGE_HOST,
        default_refresh_interval=settings.DEFAULT_REFRESH_INTERVAL_SEC,
    )

    container = ServiceContainer(
        settings=settings,
        store=store,
        payments=payments,
        orders=orders,
        reporting=reporting,
    )
    if settings.SEED_ORDERS:
        n = container.reseed()
        logger.info("seeded %d orders from fixture", n)
    return container

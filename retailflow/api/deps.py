# retailflow/api/deps.py
from __future__ import annotations

from fastapi import Depends, Request

from retailflow.services.container import ServiceContainer
from retailflow.services.delivery_sync import DeliverySync
from retailflow.services.fulfillment_workflow import FulfillmentWorkflow
from retailflow.services.order_state_machine import OrderStateMachine
from retailflow.services.payment_lifecycle import PaymentLifecycle
from retailflow.services.reporting_engine import ReportingEngine


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_orders(container: ServiceContainer = Depends(get_container)) -> OrderStateMachine:
    return container.orders


def get_payment(container: ServiceContainer = Depends(get_container)) -> PaymentLifecycle:
    return container.payment


def get_fulfillment(container: ServiceContainer = Depends(get_container)) -> FulfillmentWorkflow:
    return container.fulfillment


def get_delivery(container: ServiceContainer = Depends(get_container)) -> DeliverySync:
    return container.delivery


def get_reporting(container: ServiceContainer = Depends(get_container)) -> ReportingEngine:
    return container.reporting

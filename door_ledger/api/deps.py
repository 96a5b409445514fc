"""FastAPI dependencies resolving the per-app service objects built at startup."""

from fastapi import Request

from door_ledger.core.metrics import MetricsCollector
from door_ledger.services.ledger import LedgerService


def get_ledger(request: Request) -> LedgerService:
    return request.app.state.ledger


def get_metrics(request: Request) -> MetricsCollector:
    return request.app.state.metrics

"""API routes."""

from settlement_engine.api.routes.health import router as health_router
from settlement_engine.api.routes.pay_plans import router as pay_plans_router
from settlement_engine.api.routes.payables import router as payables_router
from settlement_engine.api.routes.settlements import router as settlements_router

__all__ = ["health_router", "pay_plans_router", "payables_router", "settlements_router"]

"""API routes."""

import logging
from fastapi import APIRouter

from restocore.api.routes import carts, orders, payments, splits

logger = logging.getLogger(__name__)

api_router = APIRouter()

api_router.include_router(carts.router, prefix="/carts", tags=["carts"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
# Payment and split routes hang off /orders/{order_id}/...
api_router.include_router(payments.router, prefix="/orders", tags=["payments"])
api_router.include_router(splits.router, prefix="/orders", tags=["payments", "splits"])

logger.debug(f"Registered {len(api_router.routes)} API routes")

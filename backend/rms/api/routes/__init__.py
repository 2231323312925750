"""API routes."""

from fastapi import APIRouter

from rms.api.routes import categories, kitchen, orders, payments, tables, waitlist

api_router = APIRouter()

api_router.include_router(kitchen.router, prefix="/kitchen", tags=["kitchen"])
api_router.include_router(kitchen.tickets_router, prefix="/kitchen-orders", tags=["kitchen"])
api_router.include_router(tables.router, prefix="/tables", tags=["tables"])
api_router.include_router(waitlist.router, prefix="/waitlist", tags=["waitlist"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(payments.router, prefix="/payments", tags=["payments"])
api_router.include_router(categories.router, prefix="/categories", tags=["categories"])

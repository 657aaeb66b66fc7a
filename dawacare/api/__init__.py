"""
API routes
"""
from .sync import router as sync_router
from .medicines import router as medicines_router
from .purchases import router as purchases_router
from .stock_transfers import router as stock_transfers_router
from .controlled_substances import router as controlled_substances_router
from .sales import router as sales_router
from .prescriptions import router as prescriptions_router

__all__ = [
    "sync_router",
    "medicines_router",
    "purchases_router",
    "stock_transfers_router",
    "controlled_substances_router",
    "sales_router",
    "prescriptions_router",
]

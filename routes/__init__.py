"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.inventory_upload import router as inventory_upload_router
from routes.lots import router as lots_router

__all__ = [
    "inventory_upload_router",
    "lots_router",
]

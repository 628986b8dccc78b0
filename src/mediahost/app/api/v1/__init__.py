"""API v1 module."""

from mediahost.app.api.v1.admin import router as admin_router
from mediahost.app.api.v1.instances import router as instances_router
from mediahost.app.api.v1.webhooks import router as webhooks_router

__all__ = ["admin_router", "instances_router", "webhooks_router"]

"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import notifications

router = APIRouter()

# Notification inbox, sends and activity generator
router.include_router(notifications.router)

"""API routers package"""
from land_registry.routers.auth import router as auth_router
from land_registry.routers.users import router as users_router
from land_registry.routers.properties import router as properties_router
from land_registry.routers.documents import router as documents_router
from land_registry.routers.payments import router as payments_router
from land_registry.routers.disputes import router as disputes_router
from land_registry.routers.notifications import router as notifications_router
from land_registry.routers.logs import router as logs_router
from land_registry.routers.reports import router as reports_router
from land_registry.routers.transfers import router as transfers_router

__all__ = [
    "auth_router",
    "users_router",
    "properties_router",
    "documents_router",
    "payments_router",
    "disputes_router",
    "notifications_router",
    "logs_router",
    "reports_router",
    "transfers_router",
]

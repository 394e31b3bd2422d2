from .applications import router as applications_router
from .verifications import router as verifications_router
from .audit import router as audit_router
from .deliveries import router as deliveries_router
from .payments import router as payments_router
from .addons import router as addons_router
from .users import router as users_router

__all__ = [
    "applications_router",
    "verifications_router",
    "audit_router",
    "deliveries_router",
    "payments_router",
    "addons_router",
    "users_router",
]

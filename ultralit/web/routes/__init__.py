from .auth import router as auth_router
from .subscriptions import router as subscriptions_router
from .payments import router as payments_router
from .scheduler import router as scheduler_router

__all__ = ["auth_router", "subscriptions_router", "payments_router", "scheduler_router"]

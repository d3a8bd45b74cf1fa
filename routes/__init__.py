from routes.actions import router as actions_router
from routes.health import router as health_router

__all__ = ["actions_router", "health_router"]

from .passkey import router as passkey_router
from .health import router as health_router

__all__ = ["passkey_router", "health_router"]

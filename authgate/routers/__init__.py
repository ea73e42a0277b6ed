from .device_router import router as device_router
from .two_factor_router import router as two_factor_router

__all__ = ["two_factor_router", "device_router"]

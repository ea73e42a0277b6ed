# authgate/services/__init__.py
from .account_store import account_store
from .credential_service import credential_service
from .device_trust_service import device_trust_service
from .security_events import security_events
from .two_factor_service import two_factor_service

__all__ = [
    "account_store",
    "credential_service",
    "device_trust_service",
    "security_events",
    "two_factor_service",
]

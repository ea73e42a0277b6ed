from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from authgate.auth.dependencies import (
    get_account_store,
    get_credential_service,
    get_device_trust_service,
    get_security_events,
    get_two_factor_service,
)
from authgate.main import app
from authgate.services.account_store import TwoFactorAccountStore
from authgate.services.credential_service import CredentialService
from authgate.services.device_trust_service import DeviceTrustService, TrustedDeviceStore
from authgate.services.security_events import SecurityEventLog
from authgate.services.two_factor_service import TwoFactorService
from authgate.utils.encryption import SecretCipher
from authgate.utils.rate_limiter import AttemptLimiter, limiter


class FakeClock:
    """Relógio controlável para expiração de confiança e de cadastro."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    # Meio-dia de hoje: fora do horário incomum e perto do relógio real
    return FakeClock(datetime.now().replace(hour=12, minute=0, second=0, microsecond=0))


@pytest.fixture
def attempt_limiter():
    attempt_limiter = AttemptLimiter(storage_uri="memory://")
    yield attempt_limiter
    attempt_limiter.close()


@pytest.fixture
def two_factor(attempt_limiter):
    return TwoFactorService(attempt_limiter=attempt_limiter)


@pytest.fixture
def device_trust(clock):
    return DeviceTrustService(store=TrustedDeviceStore(), clock=clock)


@pytest.fixture
def accounts():
    return TwoFactorAccountStore(cipher=SecretCipher("test-encryption-key"))


@pytest.fixture
def credentials():
    return CredentialService()


@pytest.fixture
def events():
    return SecurityEventLog(max_events=50)


@pytest.fixture
def client(two_factor, device_trust, accounts, credentials, events):
    app.dependency_overrides[get_two_factor_service] = lambda: two_factor
    app.dependency_overrides[get_device_trust_service] = lambda: device_trust
    app.dependency_overrides[get_account_store] = lambda: accounts
    app.dependency_overrides[get_credential_service] = lambda: credentials
    app.dependency_overrides[get_security_events] = lambda: events
    limiter.reset()

    yield TestClient(app)

    app.dependency_overrides.clear()

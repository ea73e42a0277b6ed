from fastapi import Request

from authgate.models.device import RequestMetadata
from authgate.services.account_store import TwoFactorAccountStore, account_store
from authgate.services.credential_service import CredentialService, credential_service
from authgate.services.device_trust_service import DeviceTrustService, device_trust_service
from authgate.services.security_events import SecurityEventLog, security_events
from authgate.services.two_factor_service import TwoFactorService, two_factor_service

# Providers para Depends(); os testes trocam as instâncias via app.dependency_overrides


def get_two_factor_service() -> TwoFactorService:
    return two_factor_service


def get_device_trust_service() -> DeviceTrustService:
    return device_trust_service


def get_account_store() -> TwoFactorAccountStore:
    return account_store


def get_credential_service() -> CredentialService:
    return credential_service


def get_security_events() -> SecurityEventLog:
    return security_events


def get_request_metadata(request: Request) -> RequestMetadata:
    return RequestMetadata.from_request(request)

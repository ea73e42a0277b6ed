from fastapi import APIRouter, Body, Depends, Header, Query

from authgate.auth.dependencies import (
    get_account_store,
    get_device_trust_service,
    get_request_metadata,
    get_security_events,
    get_two_factor_service,
)
from authgate.core.config import settings
from authgate.core.errors import ValidationError, VerificationFailure
from authgate.models.device import RequestMetadata
from authgate.models.two_factor import TwoFactorStatus
from authgate.routers.two_factor_router import enforce_attempt_limit
from authgate.schemas.device_schemas import (
    RiskAssessmentResponse,
    TrustedDeviceListResponse,
    TrustStatisticsResponse,
)
from authgate.schemas.two_factor_schemas import MessageResponse, RiskRequest
from authgate.services.account_store import TwoFactorAccountStore, normalize_email
from authgate.services.device_trust_service import DeviceTrustService
from authgate.services.security_events import SecurityEventLog
from authgate.services.two_factor_service import TwoFactorService

router = APIRouter(
    prefix="/2fa",
    tags=["Trusted Devices"]
)


def require_account_owner(
    email: str = Query(..., min_length=1),
    code: str = Header(..., alias="X-2FA-Code", min_length=1),
    service: TwoFactorService = Depends(get_two_factor_service),
    accounts: TwoFactorAccountStore = Depends(get_account_store),
    events: SecurityEventLog = Depends(get_security_events),
) -> str:
    """
    Só o dono da conta vê ou revoga seus dispositivos: exige um código TOTP atual
    no cabeçalho X-2FA-Code. Conta com o mesmo limite de tentativas do login.
    """
    email = normalize_email(email)
    enforce_attempt_limit(
        service,
        events,
        f"2fa_login:{email}",
        settings.LOGIN_VERIFY_MAX_ATTEMPTS,
        settings.LOGIN_VERIFY_WINDOW_MS,
        "Too many login attempts.",
    )

    if accounts.status(email) != TwoFactorStatus.ACTIVE:
        raise ValidationError("Two-factor authentication is not enabled for this account")

    secret = accounts.active_secret(email)
    if secret is None or not service.verify_code(secret, code):
        events.record("device_access_denied", "Código inválido ao acessar dispositivos", "medium", email=email)
        raise VerificationFailure("Invalid verification code")
    return email


@router.post("/risk", response_model=RiskAssessmentResponse, summary="Avaliar se o login exige 2FA")
async def assess_login_risk(
    data: RiskRequest = Body(...),
    metadata: RequestMetadata = Depends(get_request_metadata),
    devices: DeviceTrustService = Depends(get_device_trust_service),
    accounts: TwoFactorAccountStore = Depends(get_account_store),
):
    """
    Consultado antes do desafio TOTP: dispositivo confiável dispensa o código,
    caso contrário a resposta traz o motivo e o nível de risco.
    """
    email = normalize_email(data.email)
    assessment = devices.assess_risk(email, metadata, accounts.last_login(email))
    return {"success": True, "data": assessment.model_dump()}


@router.get("/devices", response_model=TrustedDeviceListResponse, summary="Listar dispositivos confiáveis")
async def list_trusted_devices(
    email: str = Depends(require_account_owner),
    devices: DeviceTrustService = Depends(get_device_trust_service),
):
    trusted = devices.list(email)
    return {"success": True, "data": [device.model_dump() for device in trusted]}


@router.get("/devices/statistics", response_model=TrustStatisticsResponse, summary="Estatísticas de dispositivos")
async def trusted_device_statistics(
    devices: DeviceTrustService = Depends(get_device_trust_service),
):
    return {"success": True, "data": devices.statistics().model_dump()}


@router.delete("/devices/{device_id}", response_model=MessageResponse, summary="Revogar dispositivo confiável")
async def remove_trusted_device(
    device_id: str,
    email: str = Depends(require_account_owner),
    devices: DeviceTrustService = Depends(get_device_trust_service),
    events: SecurityEventLog = Depends(get_security_events),
):
    if not devices.remove(email, device_id):
        raise ValidationError("Trusted device not found")

    events.record("device_removed", "Dispositivo confiável revogado", "info", email=email, device_id=device_id)
    return {"success": True, "message": "Trusted device removed"}

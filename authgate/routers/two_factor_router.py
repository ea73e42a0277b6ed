from fastapi import APIRouter, Body, Depends, Query

from authgate.auth.dependencies import (
    get_account_store,
    get_credential_service,
    get_device_trust_service,
    get_request_metadata,
    get_security_events,
    get_two_factor_service,
)
from authgate.core.config import settings
from authgate.core.errors import RateLimitExceeded, ValidationError, VerificationFailure
from authgate.models.device import RequestMetadata
from authgate.models.two_factor import TwoFactorStatus
from authgate.schemas.two_factor_schemas import (
    DisableRequest,
    EnableRequest,
    GenerateRequest,
    GenerateResponse,
    MessageResponse,
    EnableResponse,
    StatusResponse,
    VerifyRequest,
    VerifyResponse,
    VerifySetupRequest,
)
from authgate.services.account_store import TwoFactorAccountStore, normalize_email
from authgate.services.credential_service import CredentialService
from authgate.services.device_trust_service import DeviceTrustService
from authgate.services.security_events import SecurityEventLog
from authgate.services.two_factor_service import TwoFactorService

router = APIRouter(
    prefix="/2fa",
    tags=["Two Factor Authentication"]
)


def enforce_attempt_limit(
    service: TwoFactorService,
    events: SecurityEventLog,
    key: str,
    max_attempts: int,
    window_ms: int,
    message: str,
) -> None:
    try:
        service.enforce_rate_limit(key, max_attempts, window_ms, message)
    except RateLimitExceeded:
        events.record("rate_limit_exceeded", "Limite de tentativas de 2FA excedido", "high", limit_key=key)
        raise


@router.post("/generate", response_model=GenerateResponse, summary="Gerar dados de cadastro 2FA")
async def generate_enrollment(
    data: GenerateRequest = Body(...),
    service: TwoFactorService = Depends(get_two_factor_service),
    accounts: TwoFactorAccountStore = Depends(get_account_store),
    events: SecurityEventLog = Depends(get_security_events),
):
    """
    Gera segredo, QR code, chave manual e códigos de backup.
    O segredo fica pendente até /2fa/enable; um 2FA já ativo continua valendo até lá.
    """
    email = normalize_email(data.email)
    enforce_attempt_limit(
        service,
        events,
        f"2fa_generate:{email}",
        settings.GENERATE_MAX_ATTEMPTS,
        settings.GENERATE_WINDOW_MS,
        "Too many 2FA generation attempts.",
    )

    accounts.sweep_abandoned_enrollments()
    enrollment = service.generate_enrollment_data(email)
    accounts.start_enrollment(email, enrollment.secret)

    events.record("2fa_enrollment_generated", "Dados de cadastro 2FA gerados", "info", email=email)
    return {"success": True, "data": enrollment.model_dump()}


@router.post("/verify-setup", response_model=MessageResponse, summary="Verificar configuração 2FA")
async def verify_setup(
    data: VerifySetupRequest = Body(...),
    service: TwoFactorService = Depends(get_two_factor_service),
    accounts: TwoFactorAccountStore = Depends(get_account_store),
    events: SecurityEventLog = Depends(get_security_events),
):
    """
    Confere se o app autenticador do usuário gera códigos válidos para o segredo.
    Havendo cadastro pendente, o segredo enviado precisa ser o dele.
    """
    email = normalize_email(data.email)
    limit_key = f"2fa_verify:{email}"
    enforce_attempt_limit(
        service,
        events,
        limit_key,
        settings.VERIFY_SETUP_MAX_ATTEMPTS,
        settings.VERIFY_SETUP_WINDOW_MS,
        "Too many verification attempts.",
    )

    validation = service.validate_setup(email, data.secret, data.code)
    if not validation.valid:
        events.record("2fa_setup_failed", "Falha ao verificar configuração 2FA", "medium", email=email)
        raise VerificationFailure(validation.error or "Invalid verification code")
    if accounts.pending_secret(email) is not None and not accounts.matches_pending_secret(email, data.secret):
        events.record("2fa_setup_failed", "Segredo difere do cadastro pendente", "medium", email=email)
        raise VerificationFailure("Secret does not match the pending enrollment")

    service.reset_rate_limit(limit_key)
    events.record("2fa_setup_verified", "Configuração 2FA verificada", "info", email=email)
    return {"success": True, "message": "2FA setup verified successfully"}


@router.post("/enable", response_model=EnableResponse, summary="Ativar 2FA")
async def enable_two_factor(
    data: EnableRequest = Body(...),
    service: TwoFactorService = Depends(get_two_factor_service),
    accounts: TwoFactorAccountStore = Depends(get_account_store),
    events: SecurityEventLog = Depends(get_security_events),
):
    """
    Passo final do cadastro: o segredo passa a valer e os códigos de backup substituem os anteriores.
    """
    email = normalize_email(data.email)
    if not service.is_valid_email(email):
        raise ValidationError("Invalid email format")
    if not service.is_valid_secret(data.secret):
        raise ValidationError("Invalid secret format")
    if not accounts.matches_pending_secret(email, data.secret):
        raise ValidationError("No matching pending 2FA enrollment for this account")

    accounts.activate(email, data.secret, data.backup_codes)
    events.record("2fa_enabled", "Autenticação de dois fatores habilitada", "info", email=email)

    return {
        "success": True,
        "message": "2FA enabled successfully",
        "data": {
            "two_factor_enabled": True,
            "backup_codes_count": len(data.backup_codes),
        },
    }


@router.post("/verify", response_model=VerifyResponse, summary="Verificar código 2FA no login")
async def verify_login_code(
    data: VerifyRequest = Body(...),
    metadata: RequestMetadata = Depends(get_request_metadata),
    service: TwoFactorService = Depends(get_two_factor_service),
    accounts: TwoFactorAccountStore = Depends(get_account_store),
    devices: DeviceTrustService = Depends(get_device_trust_service),
    events: SecurityEventLog = Depends(get_security_events),
):
    """
    Verifica o código TOTP (ou um código de backup, que é consumido) durante o login.
    Com rememberDevice, o dispositivo atual fica confiável pela janela de confiança.
    """
    email = normalize_email(data.email)
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

    remaining_backup_codes = None
    if data.is_backup_code:
        result = accounts.consume_backup_code(email, data.code, service.verify_backup_code)
        if result.valid:
            remaining_backup_codes = len(result.remaining_codes)
            events.record(
                "backup_code_used",
                "Código de backup utilizado",
                "medium",
                email=email,
                remaining=remaining_backup_codes,
            )
        is_valid = result.valid
    else:
        secret = accounts.active_secret(email)
        is_valid = secret is not None and service.verify_code(secret, data.code)

    if not is_valid:
        events.record("2fa_verification_failed", "Falha ao verificar código 2FA", "medium", email=email, ip=metadata.ip_address)
        raise VerificationFailure("Invalid backup code" if data.is_backup_code else "Invalid verification code")

    accounts.record_login(email)
    events.record("2fa_verified", "Código 2FA verificado no login", "info", email=email, ip=metadata.ip_address)

    device_id = None
    if data.remember_device:
        device_id = devices.trust(email, devices.fingerprint(metadata), metadata)
        events.record("device_trusted", "Dispositivo marcado como confiável", "info", email=email, device_id=device_id)

    return {
        "success": True,
        "message": "2FA verification successful",
        "data": {
            "device_id": device_id,
            "remaining_backup_codes": remaining_backup_codes,
        },
    }


@router.post("/disable", response_model=MessageResponse, summary="Desativar 2FA")
async def disable_two_factor(
    data: DisableRequest = Body(...),
    accounts: TwoFactorAccountStore = Depends(get_account_store),
    credentials: CredentialService = Depends(get_credential_service),
    events: SecurityEventLog = Depends(get_security_events),
):
    """
    Desativa o 2FA após conferir a senha atual. Segredo e códigos de backup são destruídos.
    """
    email = normalize_email(data.email)
    if not credentials.verify_password(email, data.current_password):
        events.record("2fa_disable_failed", "Senha incorreta ao desativar 2FA", "medium", email=email)
        raise ValidationError("Current password is incorrect")

    if not accounts.disable(email):
        raise ValidationError("Two-factor authentication is not enabled for this account")

    events.record("2fa_disabled", "Autenticação de dois fatores desabilitada", "warning", email=email)
    return {"success": True, "message": "2FA disabled successfully"}


@router.get("/status", response_model=StatusResponse, summary="Status do 2FA")
async def get_two_factor_status(
    email: str = Query(..., min_length=1),
    accounts: TwoFactorAccountStore = Depends(get_account_store),
):
    accounts.sweep_abandoned_enrollments()
    account = accounts.get(email)
    if account is None:
        return {
            "success": True,
            "data": {"status": TwoFactorStatus.DISABLED.value, "backup_codes_count": 0, "pending_enrollment": False},
        }
    return {
        "success": True,
        "data": {
            "status": account.status.value,
            "backup_codes_count": len(account.backup_codes),
            "pending_enrollment": account.encrypted_pending_secret is not None,
        },
    }

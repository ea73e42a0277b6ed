from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class TwoFactorStatus(str, Enum):
    DISABLED = "disabled"
    ENROLLING = "enrolling"  # segredo emitido, ainda não confirmado
    ACTIVE = "active"


class TwoFactorAccount(BaseModel):
    email: str
    status: TwoFactorStatus = TwoFactorStatus.DISABLED
    # Segredos ficam criptografados (SecretCipher); nunca em texto puro
    encrypted_secret: Optional[str] = None
    encrypted_pending_secret: Optional[str] = None
    pending_expires_at: Optional[datetime] = None
    backup_codes: List[str] = Field(default_factory=list)
    enabled_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None


class EnrollmentData(BaseModel):
    secret: str
    qr_code_url: str
    backup_codes: List[str]
    manual_entry_key: str


class SetupValidation(BaseModel):
    valid: bool
    error: Optional[str] = None


class BackupCodeVerification(BaseModel):
    valid: bool
    remaining_codes: List[str]

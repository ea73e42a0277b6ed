from datetime import datetime
from typing import Literal

from pydantic import BaseModel
from starlette.requests import Request

RiskLevel = Literal["low", "medium", "high"]


class RequestMetadata(BaseModel):
    """Atributos da requisição usados para reconhecer um dispositivo."""
    user_agent: str = ""
    accept_language: str = ""
    accept_encoding: str = ""
    ip_address: str = ""
    accept: str = ""

    @classmethod
    def from_request(cls, request: Request) -> "RequestMetadata":
        return cls(
            user_agent=request.headers.get("user-agent", ""),
            accept_language=request.headers.get("accept-language", ""),
            accept_encoding=request.headers.get("accept-encoding", ""),
            ip_address=request.client.host if request.client else "",
            accept=request.headers.get("accept", ""),
        )


class TrustedDevice(BaseModel):
    id: str
    user_id: str
    fingerprint: str
    name: str
    created_at: datetime
    last_used: datetime
    expires_at: datetime  # fixo na criação; uso não estende
    ip_address: str
    user_agent: str

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now


class RiskAssessment(BaseModel):
    required: bool
    reason: str
    risk_level: RiskLevel


class TrustStatistics(BaseModel):
    total_trusted_devices: int
    active_devices: int
    expired_devices: int

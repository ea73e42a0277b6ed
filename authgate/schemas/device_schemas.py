from datetime import datetime
from typing import List

from authgate.schemas.two_factor_schemas import CamelModel


class TrustedDeviceResponse(CamelModel):
    """
    Dispositivo confiável como exposto ao cliente (sem a impressão digital)
    """
    id: str
    name: str
    created_at: datetime
    last_used: datetime
    expires_at: datetime
    ip_address: str
    user_agent: str


class TrustedDeviceListResponse(CamelModel):
    success: bool
    data: List[TrustedDeviceResponse]


class RiskAssessmentData(CamelModel):
    required: bool
    reason: str
    risk_level: str


class RiskAssessmentResponse(CamelModel):
    success: bool
    data: RiskAssessmentData


class TrustStatisticsData(CamelModel):
    total_trusted_devices: int
    active_devices: int
    expired_devices: int


class TrustStatisticsResponse(CamelModel):
    success: bool
    data: TrustStatisticsData

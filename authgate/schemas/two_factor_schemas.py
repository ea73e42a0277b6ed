from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    Base dos schemas da API: JSON em camelCase, atributos em snake_case
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerateRequest(CamelModel):
    email: str = Field(..., min_length=1)


class VerifySetupRequest(CamelModel):
    email: str = Field(..., min_length=1)
    secret: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1)


class EnableRequest(CamelModel):
    email: str = Field(..., min_length=1)
    secret: str = Field(..., min_length=1)
    backup_codes: List[str]


class VerifyRequest(CamelModel):
    email: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1)
    is_backup_code: bool = False
    remember_device: bool = False


class DisableRequest(CamelModel):
    email: str = Field(..., min_length=1)
    current_password: str = Field(..., min_length=1)


class RiskRequest(CamelModel):
    email: str = Field(..., min_length=1)


class EnrollmentDataResponse(CamelModel):
    secret: str
    qr_code_url: str
    backup_codes: List[str]
    manual_entry_key: str


class GenerateResponse(CamelModel):
    success: bool
    data: EnrollmentDataResponse


class MessageResponse(CamelModel):
    success: bool
    message: Optional[str] = None


class EnableData(CamelModel):
    two_factor_enabled: bool
    backup_codes_count: int


class EnableResponse(MessageResponse):
    data: EnableData


class VerifyData(CamelModel):
    device_id: Optional[str] = None
    remaining_backup_codes: Optional[int] = None


class VerifyResponse(MessageResponse):
    data: VerifyData


class StatusData(CamelModel):
    status: str
    backup_codes_count: int
    pending_enrollment: bool


class StatusResponse(CamelModel):
    success: bool
    data: StatusData

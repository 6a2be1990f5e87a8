from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from gdpr_kit.models.patterns import EMAIL_REGEX


class RequestType(str, Enum):
    ACCESS = "ACCESS"
    RECTIFICATION = "RECTIFICATION"
    ERASURE = "ERASURE"
    PORTABILITY = "PORTABILITY"
    RESTRICTION = "RESTRICTION"
    OBJECTION = "OBJECTION"


class RequestStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


OPEN_STATUSES = {RequestStatus.PENDING, RequestStatus.IN_PROGRESS}
CLOSED_STATUSES = {RequestStatus.COMPLETED, RequestStatus.REJECTED}


class DataRequestCreate(BaseModel):
    request_type: RequestType
    email: str = Field(max_length=254, pattern=EMAIL_REGEX)
    description: str = Field(min_length=10, max_length=2000)


class DataRequestReceipt(BaseModel):
    request_id: str
    status: RequestStatus
    due_at: datetime


class DataRequestTransition(BaseModel):
    status: RequestStatus
    note: Optional[str] = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def validate_note(self) -> "DataRequestTransition":
        if self.status in CLOSED_STATUSES and not (self.note or "").strip():
            raise ValueError("A resolution note is required to close a request")
        return self


class DataRequestExtension(BaseModel):
    reason: str = Field(min_length=10, max_length=500)


class DataRequestRecord(BaseModel):
    request_id: str
    request_type: RequestType
    email: Optional[str] = None
    description: Optional[str] = None
    status: RequestStatus
    submitted_at: datetime
    due_at: datetime
    extended: bool = False
    updated_at: datetime
    resolved_at: Optional[datetime] = None
    resolution_note: Optional[str] = None
    handled_by: Optional[str] = None
    user_id: Optional[str] = None
    overdue: bool = False

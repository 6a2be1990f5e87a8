from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class LawfulBasis(str, Enum):
    CONSENT = "consent"
    CONTRACT = "contract"
    LEGAL_OBLIGATION = "legal_obligation"
    VITAL_INTERESTS = "vital_interests"
    PUBLIC_TASK = "public_task"
    LEGITIMATE_INTERESTS = "legitimate_interests"


class ProcessingActivity(BaseModel):
    activity_id: str
    name: str
    purpose: str
    lawful_basis: LawfulBasis
    data_categories: list[str] = Field(default_factory=list)
    data_subjects: list[str] = Field(default_factory=list)
    recipients: list[str] = Field(default_factory=list)
    retention_period: str = ""
    international_transfers: str = "None"
    security_measures: list[str] = Field(default_factory=list)


class PrivacyPolicyDocument(BaseModel):
    version: str
    generated_at: datetime
    content: str

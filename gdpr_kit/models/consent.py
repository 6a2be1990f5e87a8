from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ConsentCategory(str, Enum):
    NECESSARY = "necessary"
    PREFERENCES = "preferences"
    ANALYTICS = "analytics"
    MARKETING = "marketing"


OPTIONAL_CATEGORIES = (
    ConsentCategory.PREFERENCES,
    ConsentCategory.ANALYTICS,
    ConsentCategory.MARKETING,
)


class ConsentSource(str, Enum):
    BANNER = "banner"
    ACCEPT_ALL = "accept_all"
    REJECT_ALL = "reject_all"
    WITHDRAWAL = "withdrawal"


class ConsentChoices(BaseModel):
    preferences: bool = False
    analytics: bool = False
    marketing: bool = False


class ConsentUpdateRequest(ConsentChoices):
    expected_revision: Optional[int] = Field(default=None, ge=0)


class ConsentRecord(BaseModel):
    consent_id: Optional[str] = None
    subject_id: str
    user_id: Optional[str] = None
    necessary: bool = True
    preferences: bool = False
    analytics: bool = False
    marketing: bool = False
    policy_version: Optional[str] = None
    revision: int = 0
    source: Optional[ConsentSource] = None
    recorded_at: Optional[datetime] = None
    withdrawn: bool = False


class ConsentStatus(ConsentRecord):
    renewal_required: bool
    allowed_categories: list[ConsentCategory]


class BannerCategory(BaseModel):
    key: ConsentCategory
    label: str
    description: str
    required: bool = False


class BannerConfig(BaseModel):
    message: str
    policy_version: str
    privacy_policy_url: str
    categories: list[BannerCategory]
    accept_all_label: str = "Accept all"
    reject_all_label: str = "Reject all"
    save_label: str = "Save choices"

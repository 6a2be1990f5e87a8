from datetime import datetime
from typing import Any

from pydantic import BaseModel


class AuditEvent(BaseModel):
    timestamp: datetime
    event_type: str
    actor_id: str
    actor_role: str
    details: dict[str, Any]

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from gdpr_kit.api.deps import get_container, require_permission
from gdpr_kit.models.audit import AuditEvent
from gdpr_kit.services.container import ServiceContainer


router = APIRouter(prefix="/audit", tags=["Audit Log"])


@router.get("/events", response_model=list[AuditEvent])
def query_audit_events(
    event_type: Optional[str] = None,
    actor_id: Optional[str] = None,
    subject_id: Optional[str] = None,
    since: Optional[datetime] = None,
    limit: int = Query(default=100, ge=1, le=1000),
    current_user: dict = Depends(require_permission("audit:read")),
    container: ServiceContainer = Depends(get_container),
) -> list[AuditEvent]:
    _ = current_user
    events = container.audit_logger.query(
        event_type=event_type,
        actor_id=actor_id,
        subject_id=subject_id,
        since=since,
        limit=limit,
    )
    return [AuditEvent(**e) for e in events]

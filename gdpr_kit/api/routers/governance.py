from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from gdpr_kit.api.deps import get_container, get_current_user, require_permission
from gdpr_kit.models.governance import (
    AuditReport,
    ErasureRequest,
    ErasureResponse,
    NotificationRecord,
    RetentionCleanupResponse,
    SubjectAccessResponse,
)
from gdpr_kit.services.container import ServiceContainer


router = APIRouter(prefix="/governance", tags=["Governance"])


@router.get("/export/{target_user_id}", response_model=SubjectAccessResponse)
def export_subject_data(
    target_user_id: str,
    download: bool = False,
    current_user: dict = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    export = container.governance_service.export_subject_data(current_user, target_user_id)
    if not download:
        return export
    return JSONResponse(
        content=jsonable_encoder(export),
        headers={"Content-Disposition": f'attachment; filename="personal-data-{target_user_id}.json"'},
    )


@router.post("/erase/{target_user_id}", response_model=ErasureResponse)
def erase_user_data(
    target_user_id: str,
    payload: Optional[ErasureRequest] = None,
    current_user: dict = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
) -> ErasureResponse:
    reason = payload.reason if payload else None
    return container.governance_service.erase_user(current_user, target_user_id, reason=reason)


@router.post("/retention/cleanup", response_model=RetentionCleanupResponse)
def run_retention_cleanup(
    dry_run: bool = False,
    audit_retention_days: Optional[int] = Query(default=None, ge=30, le=3650),
    current_user: dict = Depends(require_permission("governance:retention")),
    container: ServiceContainer = Depends(get_container),
) -> RetentionCleanupResponse:
    return container.governance_service.retention_cleanup(
        current_user,
        dry_run=dry_run,
        audit_retention_days=audit_retention_days,
    )


@router.get("/audit", response_model=AuditReport)
def run_compliance_audit(
    current_user: dict = Depends(require_permission("governance:audit")),
    container: ServiceContainer = Depends(get_container),
) -> AuditReport:
    return container.compliance_audit_service.run(current_user)


@router.get("/notifications", response_model=list[NotificationRecord])
def list_notifications(
    current_user: dict = Depends(require_permission("notifications:read")),
    container: ServiceContainer = Depends(get_container),
) -> list[NotificationRecord]:
    _ = current_user
    return container.notification_service.list_notifications()


@router.post("/keys/rotate")
def rotate_encryption_keys(
    current_user: dict = Depends(require_permission("governance:keys")),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, int]:
    try:
        return container.governance_service.rotate_encryption(current_user)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc

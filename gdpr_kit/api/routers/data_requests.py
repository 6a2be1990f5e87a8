from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from gdpr_kit.api.deps import client_ip, get_container, require_permission
from gdpr_kit.models.data_request import (
    DataRequestCreate,
    DataRequestExtension,
    DataRequestReceipt,
    DataRequestRecord,
    DataRequestTransition,
    RequestStatus,
)
from gdpr_kit.models.patterns import EMAIL_REGEX
from gdpr_kit.services.container import ServiceContainer


router = APIRouter(prefix="/data-requests", tags=["Data Subject Requests"])


@router.post("", response_model=DataRequestReceipt, status_code=201)
def submit_data_request(
    payload: DataRequestCreate,
    request: Request,
    container: ServiceContainer = Depends(get_container),
) -> DataRequestReceipt:
    return container.data_request_service.submit(payload, ip_address=client_ip(request))


@router.get("/{request_id}/status", response_model=DataRequestReceipt)
def data_request_status(
    request_id: str,
    email: str = Query(max_length=254, pattern=EMAIL_REGEX),
    container: ServiceContainer = Depends(get_container),
) -> DataRequestReceipt:
    return container.data_request_service.get_status(request_id, email)


@router.get("", response_model=list[DataRequestRecord])
def list_data_requests(
    status: Optional[RequestStatus] = None,
    overdue: bool = False,
    current_user: dict = Depends(require_permission("data_request:process")),
    container: ServiceContainer = Depends(get_container),
) -> list[DataRequestRecord]:
    return container.data_request_service.list_requests(current_user, status=status, overdue_only=overdue)


@router.get("/{request_id}", response_model=DataRequestRecord)
def get_data_request(
    request_id: str,
    current_user: dict = Depends(require_permission("data_request:process")),
    container: ServiceContainer = Depends(get_container),
) -> DataRequestRecord:
    return container.data_request_service.get_request(current_user, request_id)


@router.post("/{request_id}/transition", response_model=DataRequestRecord)
def transition_data_request(
    request_id: str,
    payload: DataRequestTransition,
    current_user: dict = Depends(require_permission("data_request:process")),
    container: ServiceContainer = Depends(get_container),
) -> DataRequestRecord:
    return container.data_request_service.transition(current_user, request_id, payload.status, payload.note)


@router.post("/{request_id}/extend", response_model=DataRequestRecord)
def extend_data_request(
    request_id: str,
    payload: DataRequestExtension,
    current_user: dict = Depends(require_permission("data_request:process")),
    container: ServiceContainer = Depends(get_container),
) -> DataRequestRecord:
    return container.data_request_service.extend(current_user, request_id, payload.reason)

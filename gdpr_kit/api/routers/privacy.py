from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from gdpr_kit.api.deps import get_container, require_permission
from gdpr_kit.models.privacy import PrivacyPolicyDocument, ProcessingActivity
from gdpr_kit.services.container import ServiceContainer


router = APIRouter(prefix="/privacy", tags=["Privacy Policy"])


@router.get("/policy", response_model=PrivacyPolicyDocument)
def get_privacy_policy(container: ServiceContainer = Depends(get_container)) -> PrivacyPolicyDocument:
    return container.privacy_policy_service.generate_policy()


@router.get("/policy.md", response_class=PlainTextResponse)
def get_privacy_policy_markdown(container: ServiceContainer = Depends(get_container)) -> PlainTextResponse:
    document = container.privacy_policy_service.generate_policy()
    return PlainTextResponse(document.content, media_type="text/markdown")


@router.get("/processing-activities", response_model=list[ProcessingActivity])
def list_processing_activities(
    current_user: dict = Depends(require_permission("processing:read")),
    container: ServiceContainer = Depends(get_container),
) -> list[ProcessingActivity]:
    _ = current_user
    return container.privacy_policy_service.list_activities()

from typing import Any, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, Form, Request, Response
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from gdpr_kit.api.deps import client_ip, get_container, get_optional_user
from gdpr_kit.core.config import settings
from gdpr_kit.models.consent import BannerConfig, ConsentRecord, ConsentStatus, ConsentUpdateRequest
from gdpr_kit.services.container import ServiceContainer


router = APIRouter(prefix="/consent", tags=["Cookie Consent"])

templates = Jinja2Templates(directory=str(settings.template_dir))

VISITOR_COOKIE = "gdpr_visitor_id"
CONSENT_COOKIE = "gdpr_consent"
ONE_YEAR = 60 * 60 * 24 * 365


def visitor_id(request: Request, response: Response) -> str:
    subject_id = request.cookies.get(VISITOR_COOKIE)
    if not subject_id:
        subject_id = uuid4().hex
        response.set_cookie(
            VISITOR_COOKIE,
            subject_id,
            max_age=ONE_YEAR,
            httponly=True,
            samesite="lax",
        )
    return subject_id


def _meta(request: Request, user: Optional[dict[str, Any]]) -> dict[str, Any]:
    return {
        "ip_address": client_ip(request),
        "user_agent": request.headers.get("user-agent"),
        "user": user,
    }


def _set_consent_cookie(response: Response, status: ConsentStatus) -> None:
    response.set_cookie(
        CONSENT_COOKIE,
        "|".join(c.value for c in status.allowed_categories),
        max_age=ONE_YEAR,
        samesite="lax",
    )


@router.get("/banner", response_model=BannerConfig)
def get_banner(container: ServiceContainer = Depends(get_container)) -> BannerConfig:
    return container.consent_service.banner_config()


@router.get("/banner.html", response_class=HTMLResponse)
def render_banner(
    request: Request,
    container: ServiceContainer = Depends(get_container),
) -> HTMLResponse:
    subject_id = request.cookies.get(VISITOR_COOKIE)
    status = container.consent_service.get_consent(subject_id) if subject_id else None
    return templates.TemplateResponse(
        request,
        "cookie_banner.html",
        {
            "banner": container.consent_service.banner_config(),
            "status": status,
        },
    )


@router.get("", response_model=ConsentStatus)
def read_consent(
    request: Request,
    response: Response,
    container: ServiceContainer = Depends(get_container),
) -> ConsentStatus:
    return container.consent_service.get_consent(visitor_id(request, response))


@router.post("", response_model=ConsentStatus)
def save_consent(
    payload: ConsentUpdateRequest,
    request: Request,
    response: Response,
    user: Optional[dict] = Depends(get_optional_user),
    container: ServiceContainer = Depends(get_container),
) -> ConsentStatus:
    status = container.consent_service.record_consent(
        visitor_id(request, response),
        payload,
        expected_revision=payload.expected_revision,
        **_meta(request, user),
    )
    _set_consent_cookie(response, status)
    return status


@router.post("/form", response_model=ConsentStatus)
def save_consent_form(
    request: Request,
    response: Response,
    preferences: Optional[str] = Form(default=None),
    analytics: Optional[str] = Form(default=None),
    marketing: Optional[str] = Form(default=None),
    expected_revision: Optional[int] = Form(default=None, ge=0),
    user: Optional[dict] = Depends(get_optional_user),
    container: ServiceContainer = Depends(get_container),
) -> ConsentStatus:
    payload = ConsentUpdateRequest(
        preferences=preferences is not None,
        analytics=analytics is not None,
        marketing=marketing is not None,
        expected_revision=expected_revision,
    )
    status = container.consent_service.record_consent(
        visitor_id(request, response),
        payload,
        expected_revision=payload.expected_revision,
        **_meta(request, user),
    )
    _set_consent_cookie(response, status)
    return status


@router.post("/accept-all", response_model=ConsentStatus)
def accept_all(
    request: Request,
    response: Response,
    user: Optional[dict] = Depends(get_optional_user),
    container: ServiceContainer = Depends(get_container),
) -> ConsentStatus:
    status = container.consent_service.accept_all(visitor_id(request, response), **_meta(request, user))
    _set_consent_cookie(response, status)
    return status


@router.post("/reject-all", response_model=ConsentStatus)
def reject_all(
    request: Request,
    response: Response,
    user: Optional[dict] = Depends(get_optional_user),
    container: ServiceContainer = Depends(get_container),
) -> ConsentStatus:
    status = container.consent_service.reject_all(visitor_id(request, response), **_meta(request, user))
    _set_consent_cookie(response, status)
    return status


@router.delete("", response_model=ConsentStatus)
def withdraw_consent(
    request: Request,
    response: Response,
    user: Optional[dict] = Depends(get_optional_user),
    container: ServiceContainer = Depends(get_container),
) -> ConsentStatus:
    status = container.consent_service.withdraw_consent(visitor_id(request, response), **_meta(request, user))
    _set_consent_cookie(response, status)
    return status


@router.get("/history", response_model=list[ConsentRecord])
def consent_history(
    request: Request,
    response: Response,
    container: ServiceContainer = Depends(get_container),
) -> list[ConsentRecord]:
    return container.consent_service.consent_history(visitor_id(request, response))


@router.get("/scripts")
def allowed_scripts(
    request: Request,
    response: Response,
    container: ServiceContainer = Depends(get_container),
) -> list[dict[str, str]]:
    return container.consent_service.allowed_scripts(visitor_id(request, response))

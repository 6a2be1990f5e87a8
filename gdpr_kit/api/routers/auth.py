from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm

from gdpr_kit.api.deps import get_container, get_current_user, require_permission
from gdpr_kit.models.auth import RegisterRequest, Token, UserPublic
from gdpr_kit.models.governance import ErasureRequest, ErasureResponse
from gdpr_kit.services.container import ServiceContainer


router = APIRouter(tags=["Auth"])


@router.post("/auth/token", response_model=Token)
def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    container: ServiceContainer = Depends(get_container),
) -> Token:
    user = container.auth_service.authenticate(form_data.username, form_data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return container.auth_service.issue_token(user)


@router.post("/auth/register", response_model=UserPublic, status_code=201)
def register(
    payload: RegisterRequest,
    container: ServiceContainer = Depends(get_container),
) -> UserPublic:
    user = container.auth_service.register(payload)
    return container.auth_service.as_public(user)


@router.get("/auth/me", response_model=UserPublic)
def read_me(
    current_user: dict = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
) -> UserPublic:
    return container.auth_service.as_public(current_user)


@router.get("/auth/users", response_model=list[UserPublic])
def list_users(
    current_user: dict = Depends(require_permission("users:read")),
    container: ServiceContainer = Depends(get_container),
) -> list[UserPublic]:
    _ = current_user
    return container.auth_service.list_users()


@router.delete("/account", response_model=ErasureResponse)
def delete_own_account(
    payload: ErasureRequest | None = None,
    current_user: dict = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
) -> ErasureResponse:
    reason = payload.reason if payload else "self-service account deletion"
    return container.governance_service.erase_user(current_user, current_user["user_id"], reason=reason)

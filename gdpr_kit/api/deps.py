from collections.abc import Callable
from typing import Any, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from gdpr_kit.core.rbac import has_permission
from gdpr_kit.core.security import decode_access_token
from gdpr_kit.services.container import ServiceContainer


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def _user_from_token(token: str, container: ServiceContainer) -> dict[str, Any]:
    try:
        payload = decode_access_token(token, container.settings)
        user_id = payload.get("sub")
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from exc

    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )

    return container.auth_service.require_user(user_id)


def get_current_user(
    token: str = Depends(oauth2_scheme),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    return _user_from_token(token, container)


def get_optional_user(
    token: Optional[str] = Depends(optional_oauth2_scheme),
    container: ServiceContainer = Depends(get_container),
) -> Optional[dict[str, Any]]:
    if not token:
        return None
    try:
        return _user_from_token(token, container)
    except HTTPException:
        # Stale or revoked tokens fall back to an anonymous visitor.
        return None


def require_permission(permission: str) -> Callable[[dict[str, Any]], dict[str, Any]]:
    def dependency(user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
        if not has_permission(user["role"], permission):
            raise HTTPException(status_code=403, detail="Insufficient role permissions")
        return user

    return dependency


def client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None

import logging
import time
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from gdpr_kit.core.config import Settings
from gdpr_kit.core.encryption import pseudonymize
from gdpr_kit.core.security import decode_access_token
from gdpr_kit.repositories.data_store import DataStore


logger = logging.getLogger(__name__)


class PersonalDataAccessLogMiddleware(BaseHTTPMiddleware):
    """Records who touched which personal-data endpoint, and when."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        container = request.app.state.container
        prefixes = container.settings.personal_data_paths
        path = request.url.path
        if not any(path == p or path.startswith(p.rstrip("/") + "/") for p in prefixes):
            return await call_next(request)

        actor_id, actor_role = self._resolve_actor(request, container.settings)
        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - started) * 1000, 2)

        # The request may have just erased its caller or the user in its path.
        actor_id = self._erased_reference(container.store, actor_id)
        path = "/".join(self._erased_reference(container.store, part) for part in path.split("/"))

        ip = request.client.host if request.client else None
        ip_hash = pseudonymize(ip, container.settings.pseudonym_salt) if ip else None

        logger.info(
            "personal data access %s %s -> %s by %s (%.2f ms)",
            request.method,
            path,
            response.status_code,
            actor_id,
            duration_ms,
        )
        container.audit_logger.log_event(
            event_type="personal_data_access",
            actor_id=actor_id,
            actor_role=actor_role,
            details={
                "method": request.method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
                "ip_hash": ip_hash,
            },
        )
        return response

    @staticmethod
    def _erased_reference(store: DataStore, user_id: str) -> str:
        user = store.users.get(user_id)
        if user and user.get("anonymized_at"):
            return user["username"]
        return user_id

    @staticmethod
    def _resolve_actor(request: Request, settings: Settings) -> tuple[str, str]:
        header = request.headers.get("authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token:
            return "anonymous", "ANONYMOUS"
        try:
            payload = decode_access_token(token, settings)
        except ValueError:
            return "anonymous", "ANONYMOUS"
        return payload.get("sub") or "anonymous", payload.get("role") or "UNKNOWN"

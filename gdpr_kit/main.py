from fastapi import FastAPI

from gdpr_kit.api.middleware import PersonalDataAccessLogMiddleware
from gdpr_kit.api.routers.audit import router as audit_router
from gdpr_kit.api.routers.auth import router as auth_router
from gdpr_kit.api.routers.consent import router as consent_router
from gdpr_kit.api.routers.data_requests import router as data_requests_router
from gdpr_kit.api.routers.governance import router as governance_router
from gdpr_kit.api.routers.privacy import router as privacy_router
from gdpr_kit.core.logging import configure_logging
from gdpr_kit.services.container import ServiceContainer, build_container


def create_app(container: ServiceContainer | None = None) -> FastAPI:
    container = container or build_container()
    configure_logging(container.settings)

    app = FastAPI(
        title="GDPR Compliance Kit",
        version="1.0.0",
        description=(
            "Cookie consent, privacy policy generation, field encryption, data subject requests, "
            "erasure, retention and audit logging for a web application."
        ),
    )
    app.state.container = container
    app.add_middleware(PersonalDataAccessLogMiddleware)

    @app.get("/")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": container.settings.app_name}

    app.include_router(auth_router)
    app.include_router(consent_router)
    app.include_router(privacy_router)
    app.include_router(data_requests_router)
    app.include_router(governance_router)
    app.include_router(audit_router)
    return app


app = create_app()

# backend/app/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .errors import PortalError
from .logging_config import configure_logging

from .middleware.request_id import RequestIDMiddleware
from .middleware.structured_logging import StructuredLoggingMiddleware

from .routers.meta import router as meta_router

# Identity
from .routers.auth import router as auth_router
from .routers.client_auth import router as client_auth_router
from .routers.referrals import router as referrals_router

# Provisioning
from .routers.agencies import router as agencies_router
from .routers.users import router as users_router

# Intake
from .routers.properties import router as properties_router
from .routers.documents import router as documents_router
from .routers.submissions import router as submissions_router

# Messaging + audit
from .routers.updates import router as updates_router
from .routers.files import router as files_router
from .routers.audit import router as audit_router
from .routers.notifications import router as notifications_router

# Service-to-service
from .routers.sms import router as sms_router

API_PREFIX = "/api"

log = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    val = getattr(settings, "cors_allow_origins", ["*"])
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(val, list) and val:
        return val
    return ["*"]


async def _portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    log.log(level, "portal_error kind=%s %s", exc.kind, exc.message, extra={"path": request.url.path})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [{"loc": list(e.get("loc", ())), "msg": str(e.get("msg", ""))} for e in exc.errors()]
    log.info("request_validation_failed %s", errors, extra={"path": request.url.path})
    return JSONResponse(
        status_code=400,
        content={"kind": "validation", "error": "The request is invalid.", "details": {"errors": errors}},
    )


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(title=settings.app_name, version=settings.app_version)

    # Request-ID first (observability baseline)
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(PortalError, _portal_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)

    app.include_router(meta_router, prefix=API_PREFIX)

    app.include_router(auth_router, prefix=API_PREFIX)
    app.include_router(client_auth_router, prefix=API_PREFIX)
    app.include_router(referrals_router, prefix=API_PREFIX)

    app.include_router(agencies_router, prefix=API_PREFIX)
    app.include_router(users_router, prefix=API_PREFIX)

    app.include_router(properties_router, prefix=API_PREFIX)
    app.include_router(documents_router, prefix=API_PREFIX)
    app.include_router(submissions_router, prefix=API_PREFIX)

    app.include_router(updates_router, prefix=API_PREFIX)
    app.include_router(files_router, prefix=API_PREFIX)
    app.include_router(audit_router, prefix=API_PREFIX)
    app.include_router(notifications_router, prefix=API_PREFIX)

    app.include_router(sms_router, prefix=API_PREFIX)
    return app


app = create_app()

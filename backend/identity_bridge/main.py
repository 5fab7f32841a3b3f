import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from identity_bridge.bridge.clients import AdminApiClientRegistry
from identity_bridge.bridge.gateway import build_bridge_gateway
from identity_bridge.core.config import settings
from identity_bridge.core.database import SessionLocal
from identity_bridge.federation.provider import FederationProvider
from identity_bridge.routes.bridge import router as bridge_router
from identity_bridge.routes.federation import router as federation_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    provider = FederationProvider.from_settings(settings, session_factory=SessionLocal)

    registry = None
    if settings.ADMIN_CLIENT_ID:
        registry = AdminApiClientRegistry.from_settings(settings)
    try:
        gateway = build_bridge_gateway(settings, registry)
    finally:
        if registry is not None:
            registry.close()

    app.state.federation_provider = provider
    app.state.bridge_gateway = gateway
    logger.info(
        "Startup config: federation=%s provider_id=%s import_users=%s bridge=%s",
        "enabled" if provider.enabled else "disabled",
        settings.FEDERATION_PROVIDER_ID,
        settings.FEDERATION_IMPORT_USERS,
        gateway.state.value,
    )
    try:
        yield
    finally:
        gateway.close()
        provider.close()


app = FastAPI(title="Identity Bridge", lifespan=lifespan)

_ERROR_CODE_BY_STATUS: dict[int, str] = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


def _error_code(status_code: int) -> str:
    return _ERROR_CODE_BY_STATUS.get(int(status_code), "HTTP_ERROR")


@app.exception_handler(HTTPException)
def http_exception_handler(request: Request, exc: HTTPException):  # noqa: ARG001
    detail = exc.detail
    message = detail if isinstance(detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": _error_code(exc.status_code), "message": message},
    )


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError):  # noqa: ARG001
    return JSONResponse(
        status_code=422,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Invalid request payload",
            "details": {"errors": exc.errors()},
        },
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(bridge_router)
app.include_router(federation_router)


@app.get("/health")
def health_check():
    return {"status": "ok"}

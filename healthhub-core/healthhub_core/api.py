"""
Auth HTTP Surface
=================
FastAPI routes for login, MFA and logout, a permission dependency for
protected handlers, and health/metrics endpoints.

Usage:
    app = FastAPI()
    core = build_auth_core(config)
    app.include_router(create_auth_router(core))
    app.include_router(create_health_router(core, redis_client=redis))
    install_auth_error_handler(app)

    @app.get("/patients/{resource_id}")
    async def read_patient(claims=Depends(require_permission(core, "patients", "read"))):
        ...
"""

import time
from datetime import datetime
from typing import Callable, Dict, Optional

import structlog
from fastapi import APIRouter, FastAPI, Header, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .errors import AuthCoreError, PermissionDenied, RateLimited, SessionInvalid
from .metrics import get_metrics_text
from .service import AuthCore, AuthenticationResult
from .sessions import SessionClaims

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class LoginRequest(BaseModel):
    identity: str
    secret: str


class MFARequest(BaseModel):
    mfa_token: str
    code: str


class LoginResponse(BaseModel):
    request_id: str
    token: Optional[str] = None
    expires_at: Optional[datetime] = None
    requires_mfa: bool = False
    mfa_token: Optional[str] = None


class ComponentHealth(BaseModel):
    status: str
    latency_ms: Optional[float] = None
    error: Optional[str] = None


def _client_origin(request: Request) -> str:
    """Extract client address from request."""
    client = request.client
    if client:
        return client.host
    return "unknown"


def _bearer_token(authorization: Optional[str]) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise SessionInvalid("missing_token")
    return token.strip()


def _error_response(
    status_code: int,
    payload: Dict,
    retry_after: Optional[int] = None,
) -> JSONResponse:
    headers = {}
    if payload.get("request_id"):
        headers[REQUEST_ID_HEADER] = payload["request_id"]
    if retry_after:
        headers["Retry-After"] = str(retry_after)
    return JSONResponse(status_code=status_code, content=payload, headers=headers)


def _result_response(result: AuthenticationResult):
    if result.granted or result.requires_mfa:
        return LoginResponse(
            request_id=result.request_id,
            token=result.token,
            expires_at=result.expires_at,
            requires_mfa=result.requires_mfa,
            mfa_token=result.mfa_token,
        )
    return _error_response(
        result.status_code,
        {
            "error": result.error_code,
            "message": result.error,
            "request_id": result.request_id,
        },
        result.retry_after,
    )


async def auth_error_handler(request: Request, exc: AuthCoreError) -> JSONResponse:
    """Map auth core errors to their coarse caller-visible payload."""
    request_id = request.headers.get(REQUEST_ID_HEADER)
    logger.info("auth_request_rejected", code=exc.code, path=request.url.path)
    return _error_response(
        exc.status_code,
        exc.to_user_payload(request_id),
        exc.retry_after if isinstance(exc, RateLimited) else None,
    )


def install_auth_error_handler(app: FastAPI) -> None:
    app.add_exception_handler(AuthCoreError, auth_error_handler)


def create_auth_router(core: AuthCore) -> APIRouter:
    """
    Create the authentication router.

    Returns:
        FastAPI router with /auth/login, /auth/mfa and /auth/logout
    """
    router = APIRouter(prefix="/auth", tags=["Auth"])

    @router.post("/login", response_model=LoginResponse)
    async def login(body: LoginRequest, request: Request):
        result = await core.authenticate(
            body.identity,
            body.secret,
            origin=_client_origin(request),
            user_agent=request.headers.get("user-agent"),
            request_id=request.headers.get(REQUEST_ID_HEADER),
        )
        return _result_response(result)

    @router.post("/mfa", response_model=LoginResponse)
    async def complete_mfa(body: MFARequest, request: Request):
        result = await core.complete_mfa(
            body.mfa_token,
            body.code,
            origin=_client_origin(request),
            user_agent=request.headers.get("user-agent"),
            request_id=request.headers.get(REQUEST_ID_HEADER),
        )
        return _result_response(result)

    @router.post("/logout", status_code=204)
    async def logout(request: Request, authorization: Optional[str] = Header(None)):
        await core.logout(
            _bearer_token(authorization),
            origin=_client_origin(request),
            user_agent=request.headers.get("user-agent"),
        )
        return Response(status_code=204)

    return router


def require_permission(core: AuthCore, resource: str, action: str) -> Callable:
    """
    Build a dependency that admits only sessions allowed ``resource:action``.

    The dependency returns the session claims. A ``resource_id`` path
    parameter, when present, is recorded on the authorization audit event.
    """

    async def dependency(
        request: Request,
        authorization: Optional[str] = Header(None),
    ) -> SessionClaims:
        claims = await core.validate_token(_bearer_token(authorization))
        granted = await core.authorize(
            claims,
            resource,
            action,
            origin=_client_origin(request),
            user_agent=request.headers.get("user-agent"),
            resource_id=request.path_params.get("resource_id"),
        )
        if not granted:
            raise PermissionDenied(resource, action)
        return claims

    return dependency


async def check_redis(redis_client) -> ComponentHealth:
    """Check Redis connectivity and latency."""
    try:
        start = time.time()
        await redis_client.ping()
        latency = (time.time() - start) * 1000
        return ComponentHealth(status="connected", latency_ms=round(latency, 2))
    except Exception as e:
        logger.error("Redis health check failed", error=str(e))
        return ComponentHealth(status="error", error=str(e))


def create_health_router(core: AuthCore, redis_client=None) -> APIRouter:
    """
    Create liveness, readiness and metrics endpoints.

    Readiness fails while Redis is unreachable, since logins fail closed.
    """
    router = APIRouter(tags=["Health"])

    @router.get("/health/live")
    async def liveness_probe():
        return {"status": "alive", "service": core.config.service_name}

    @router.get("/health/ready")
    async def readiness_probe():
        if redis_client is not None:
            redis_health = await check_redis(redis_client)
            if redis_health.status == "error":
                return JSONResponse(
                    status_code=503,
                    content={"status": "not_ready", "reason": "redis_unavailable"},
                )
        return {"status": "ready"}

    @router.get("/metrics")
    async def metrics():
        body, content_type = get_metrics_text()
        return Response(content=body, media_type=content_type)

    return router

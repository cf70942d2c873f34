"""
Solux API - backend for the enrollment front-end.

Provides REST endpoints for:
- Sending and verifying one-time login codes (POST /api/auth/*)
- Proxying the issuing API with the server-side key (POST /api/lithic/*)
- Health checks (GET /api/health)
"""

import asyncio
import uvicorn
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .codes import VerificationCodeService
from .config import Settings, get_settings
from .errors import EnrollmentError, ExternalServiceError, ValidationError
from .lithic import LithicAPIError, LithicClient
from .models import (
    CreateAccountRequest,
    CreateCardRequest,
    ErrorResponse,
    HealthResponse,
    SendCodeRequest,
    SendCodeResponse,
    SimulateAuthorizationRequest,
    VerifyCodeRequest,
    VerifyCodeResponse,
)
from .services import Services, build_services

# Configure logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger()


# Global services (initialized at startup)
_services: Optional[Services] = None


async def _sweep_codes(codes: VerificationCodeService, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        codes.sweep_expired()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    global _services

    settings = get_settings()
    _services = build_services(settings)

    sweeper: Optional[asyncio.Task] = None
    if settings.code_sweep_interval_seconds > 0:
        sweeper = asyncio.create_task(_sweep_codes(_services.codes, settings.code_sweep_interval_seconds))

    logger.info(
        "API started",
        version=__version__,
        host=settings.host,
        port=settings.port,
        lithic_base_url=settings.lithic_base_url,
        lithic_configured=bool(settings.lithic_api_key),
        mail_configured=bool(settings.resend_api_key),
        code_sweep_interval=settings.code_sweep_interval_seconds,
    )

    yield

    # Cleanup
    if sweeper:
        sweeper.cancel()
        await asyncio.gather(sweeper, return_exceptions=True)
    await _services.close()
    _services = None

    logger.info("API stopped")


# Create FastAPI app
app = FastAPI(
    title="Solux API",
    description="Enrollment backend: login codes and issuing API proxy",
    version=__version__,
    lifespan=lifespan,
)


# Add CORS middleware
_settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.allowed_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Dependencies & Error Mapping
# ============================================================================


def get_code_service() -> VerificationCodeService:
    if _services is None:
        raise HTTPException(status_code=503, detail="Code service not initialized")
    return _services.codes


def get_lithic_client() -> LithicClient:
    if _services is None:
        raise HTTPException(status_code=503, detail="Lithic client not initialized")
    return _services.lithic


@app.exception_handler(EnrollmentError)
async def enrollment_error_handler(request: Request, exc: EnrollmentError) -> JSONResponse:
    """Map operator-facing errors onto {"error": message} bodies."""
    status_code = 500 if isinstance(exc, ExternalServiceError) else 400
    return JSONResponse(status_code=status_code, content={"error": exc.message})


# Malformed bodies on the session-code routes answer like a missing field.
_AUTH_VALIDATION_MESSAGES = {
    "/api/auth/send-code": "Email is required",
    "/api/auth/verify-code": "Email and code are required",
}


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Answer 400 {"error": ...} for session-code routes, FastAPI's 422 elsewhere."""
    message = _AUTH_VALIDATION_MESSAGES.get(request.url.path)
    if message is None:
        return await request_validation_exception_handler(request, exc)
    logger.warning("Rejected malformed request", path=request.url.path, error_count=len(exc.errors()))
    return JSONResponse(status_code=400, content={"error": message})


def _provider_error(e: LithicAPIError, fallback: str) -> JSONResponse:
    """Relay the provider's status and payload verbatim."""
    return JSONResponse(
        status_code=e.status_code or 500,
        content=e.payload if e.payload else {"error": fallback},
    )


# ============================================================================
# Health Check
# ============================================================================


@app.get("/api/health", response_model=HealthResponse)
async def health_check(settings: Settings = Depends(get_settings)) -> HealthResponse:
    """
    Check API health and configuration.
    """
    return HealthResponse(
        status="ok",
        version=__version__,
        lithic_configured=bool(settings.lithic_api_key),
        mail_configured=bool(settings.resend_api_key),
    )


# ============================================================================
# Session Codes
# ============================================================================


@app.post(
    "/api/auth/send-code",
    response_model=SendCodeResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def send_code(
    request: SendCodeRequest,
    codes: VerificationCodeService = Depends(get_code_service),
) -> SendCodeResponse:
    """
    Email a one-time 6-digit login code.

    Any code previously issued for the same address is replaced.
    """
    if not request.email:
        raise ValidationError("Email is required")

    await codes.issue(request.email)
    return SendCodeResponse(success=True, message="Verification code sent")


@app.post(
    "/api/auth/verify-code",
    response_model=VerifyCodeResponse,
    responses={400: {"model": ErrorResponse}},
)
async def verify_code(
    request: VerifyCodeRequest,
    codes: VerificationCodeService = Depends(get_code_service),
) -> VerifyCodeResponse:
    """
    Verify (and consume) a one-time login code.
    """
    if not request.email or not request.code:
        raise ValidationError("Email and code are required")

    codes.verify(request.email, request.code)
    return VerifyCodeResponse(success=True, verified=True)


# ============================================================================
# Issuing Proxy
# ============================================================================


@app.post("/api/lithic/accounts")
async def create_account(
    request: CreateAccountRequest,
    lithic: LithicClient = Depends(get_lithic_client),
) -> Any:
    """
    Create a KYC-exempt account holder.

    The response echoes the provider body with `token` and `account_token`.
    """
    try:
        result = await lithic.create_account_holder(
            first_name=request.first_name,
            last_name=request.last_name,
            email=request.email,
            address=request.address.model_dump() if request.address else None,
            dob=request.dob,
            ssn_last_four=request.ssn_last_four,
        )
    except LithicAPIError as e:
        return _provider_error(e, "Failed to create account")

    logger.info("Account holder created", token=result.get("token"), account_token=result.get("account_token"))
    return {"token": result.get("token"), "account_token": result.get("account_token"), **result}


@app.post("/api/lithic/cards")
async def create_card(
    request: CreateCardRequest,
    lithic: LithicClient = Depends(get_lithic_client),
) -> Any:
    """
    Create a card (forwarded unchanged).
    """
    try:
        return await lithic.request("POST", "/cards", request.model_dump(exclude_none=True))
    except LithicAPIError as e:
        return _provider_error(e, "Failed to create card")


@app.post("/api/lithic/simulate/authorize")
async def simulate_authorize(
    request: SimulateAuthorizationRequest,
    lithic: LithicClient = Depends(get_lithic_client),
) -> Any:
    """
    Simulate a card authorization in the sandbox.
    """
    try:
        return await lithic.simulate_authorization(request.card_token, request.amount, request.descriptor)
    except LithicAPIError as e:
        return _provider_error(e, "Failed to simulate authorization")


# ============================================================================
# Entry Point
# ============================================================================


def run() -> None:
    """Run the API server."""
    settings = get_settings()
    uvicorn.run(
        "solux_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()

import logging
import sys
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version

import httpx
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from endorsement.app.api.claims import router as claims_router
from endorsement.app.api.endorsements import router as endorsements_router
from endorsement.app.api.verification import router as verification_router
from endorsement.app.api.webhooks import router as webhooks_router
from endorsement.app.config import Settings
from endorsement.app.services.issuance import EndorsementIssuer
from endorsement.app.services.rendering import LatexCertificateRenderer
from endorsement.app.services.signing import ArtifactSigner
from endorsement.app.services.storage import ObjectStorage
from endorsement.app.services.verification import TamperVerifier
from endorsement.app.services.webhook import WebhookDispatcher
from endorsement.app.tenants import TenantRegistry

logger = logging.getLogger("endorsement.main")


def get_app_version() -> str:
    try:
        return version("skill-endorsement")
    except PackageNotFoundError:
        return "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Guarantees:
    - Fail-fast startup if configuration is invalid (missing signing secret)
    - One shared outbound HTTP client for storage uploads and webhooks
    - Pending webhook deliveries cancelled before the client closes
    """
    logger.info(
        "endorsement_startup_begin",
        extra={"service": "endorsement", "version": get_app_version()},
    )

    # ------------------------------------------------------------------
    # Load and validate configuration (FAIL FAST)
    # ------------------------------------------------------------------
    try:
        settings = Settings()
        tenants = TenantRegistry.from_env()
    except Exception:
        logger.exception("invalid_endorsement_configuration")
        raise

    secret = settings.signing_secret.get_secret_value()

    app.state.settings = settings
    app.state.tenants = tenants

    app.state.http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(
            timeout=30.0,
            connect=10.0,
        ),
        headers={"User-Agent": f"skill-endorsement/{get_app_version()}"},
    )

    app.state.dispatcher = WebhookDispatcher(app.state.http_client)

    storage = ObjectStorage(
        http_client=app.state.http_client,
        region=settings.aws_region,
        local_root=settings.artifact_dir,
        allow_local_fallback=settings.is_development,
    )

    app.state.issuer = EndorsementIssuer(
        renderer=LatexCertificateRenderer(
            template_root=settings.template_dir,
            lualatex_binary=settings.lualatex_binary,
            timeout=settings.render_timeout_seconds,
        ),
        signer=ArtifactSigner(secret=secret),
        storage=storage,
        dispatcher=app.state.dispatcher,
        webhook_max_attempts=settings.webhook_max_attempts,
    )
    app.state.verifier = TamperVerifier(secret=secret)

    logger.info(
        "endorsement_startup_complete",
        extra={
            "environment": settings.environment,
            "local_storage": storage.is_local,
        },
    )

    try:
        yield
    finally:
        logger.info("endorsement_shutdown_begin")

        try:
            await app.state.dispatcher.aclose()
        except Exception:
            logger.warning("webhook_dispatcher_shutdown_failed")

        try:
            await app.state.http_client.aclose()
        except Exception:
            logger.warning("http_client_shutdown_failed")


async def validation_error_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Invalid request",
            "details": jsonable_encoder(exc.errors()),
        },
    )


def create_app() -> FastAPI:
    """
    Application factory for the skill endorsement service.
    """
    app = FastAPI(
        title="Skill Endorsement Service",
        description=(
            "Issues tamper-evident Open Badges v3 skill endorsement "
            "certificates and verifies them."
        ),
        version=get_app_version(),
        docs_url="/docs",
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.include_router(claims_router)
    app.include_router(endorsements_router)
    app.include_router(verification_router)
    app.include_router(webhooks_router)

    @app.get(
        "/health",
        tags=["Monitoring"],
        summary="Liveness probe",
    )
    async def health_check():
        """Does NOT render, sign or call storage."""
        return {
            "status": "ok",
            "service": "endorsement",
            "version": app.version,
            "runtime": f"python {sys.version.split()[0]}",
        }

    return app


app = create_app()

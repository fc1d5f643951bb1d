"""Main entry point for the disability intake line."""
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, WebSocket
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from intake_agent.api.health import router as health_router
from intake_agent.api.metrics import router as metrics_router
from intake_agent.api.webhooks import (
    handle_call_status,
    handle_fallback,
    handle_incoming_call,
    handle_recording,
)
from intake_agent.api.websocket import handle_media_stream
from intake_agent.config.constants import RateLimitConfig
from intake_agent.config.settings import get_settings
from intake_agent.core.call_orchestrator import CallServices
from intake_agent.core.intake_repository_factory import IntakeRepositoryFactory
from intake_agent.core.shutdown import init_shutdown_handler, shutdown
from intake_agent.services.email_service import EmailService
from intake_agent.services.remote_scoring_client import RemoteScoringClient
from intake_agent.services.scoring_strategy import build_scoring_strategy
from intake_agent.services.sms_service import SmsService
from intake_agent.utils.http_client import close_fallback_session, create_session
from intake_agent.utils.logger import get_logger

logger = get_logger(__name__)

# Rate limiter - uses remote IP address as key
limiter = Limiter(key_func=get_remote_address)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the shared collaborators every call uses and tear them down on exit.

    The pooled aiohttp session on ``app.state.http_session`` is shared by
    the remote scoring client and health probes.
    """
    settings = get_settings()
    logger.info("Starting disability intake line...")
    init_shutdown_handler()

    app.state.http_session = create_session()
    app.state.repository = await IntakeRepositoryFactory.create_repository(settings)
    app.state.remote_scoring_client = RemoteScoringClient(settings, session=app.state.http_session)
    app.state.call_services = CallServices(
        settings=settings,
        repository=app.state.repository,
        scoring_strategy=build_scoring_strategy(settings, app.state.remote_scoring_client),
        email_service=EmailService(settings),
        sms_service=SmsService(settings),
    )
    logger.info(
        f"Application started (repository={type(app.state.repository).__name__}, "
        f"remote_scoring={settings.is_remote_scoring_enabled}, sms={settings.enable_sms_followup})"
    )

    yield

    logger.info("Initiating graceful shutdown...")
    await shutdown()

    await app.state.http_session.close()
    await close_fallback_session()
    await IntakeRepositoryFactory.close()
    logger.info("Application shutdown complete")


app = FastAPI(
    title="Disability Intake Line",
    description="AI phone intake for Social Security Disability cases",
    version="1.0.0",
    lifespan=lifespan
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.include_router(health_router)
app.include_router(metrics_router)


@app.post("/voice/answer")
@limiter.limit(f"{RateLimitConfig.CALLS_PER_MINUTE}/minute")
async def voice_answer_endpoint(request: Request):
    """Handle incoming Twilio call webhook.

    Rate limited to prevent abuse.
    """
    return await handle_incoming_call(request)


@app.post("/voice/status")
@limiter.limit(f"{RateLimitConfig.STATUS_PER_MINUTE}/minute")
async def voice_status_endpoint(request: Request):
    """Handle Twilio call status callback."""
    return await handle_call_status(request)


@app.post("/voice/recording")
@limiter.limit(f"{RateLimitConfig.STATUS_PER_MINUTE}/minute")
async def voice_recording_endpoint(request: Request):
    """Handle Twilio recording callback webhook."""
    return await handle_recording(request)


@app.post("/voice/fallback")
@limiter.limit(f"{RateLimitConfig.STATUS_PER_MINUTE}/minute")
async def voice_fallback_endpoint(request: Request):
    """Handle Twilio fallback webhook."""
    return await handle_fallback(request)


@app.websocket("/voice/stream/{call_sid}")
async def voice_stream_endpoint(websocket: WebSocket, call_sid: str):
    """Handle Twilio MediaStream WebSocket connection."""
    await handle_media_stream(websocket, call_sid)


@app.get("/intakes/{intake_id}")
async def get_intake(intake_id: str, request: Request):
    """Return a stored intake; restricted to non-production environments."""
    if get_settings().is_production:
        raise HTTPException(status_code=404, detail="Not found")
    result = await request.app.state.repository.get_intake(intake_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Unknown intake")
    return result.model_dump(mode="json")


if __name__ == "__main__":
    import os
    import uvicorn

    # Use PORT from environment variable (Render provides this)
    port = int(os.environ.get("PORT", 8000))

    logger.info(f"Starting server on port {port}")
    uvicorn.run(
        "intake_agent.main:app",
        host="0.0.0.0",
        port=port,
        log_level="info"
    )

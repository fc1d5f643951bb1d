"""Health check endpoints with dependency verification."""
import asyncio
import smtplib
from datetime import datetime, timezone
from typing import Any, Dict

import aiohttp
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from twilio.rest import Client

from intake_agent.config.constants import HealthCheckConfig
from intake_agent.config.settings import get_settings
from intake_agent.core.shutdown import active_call_count, is_shutting_down
from intake_agent.utils.circuit_breaker import get_circuit_status
from intake_agent.utils.http_client import http_request_session
from intake_agent.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

OPENAI_MODELS_URL = "https://api.openai.com/v1/models"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def check_openai_health(app_state=None) -> Dict[str, Any]:
    """Check that the OpenAI API accepts our key."""
    settings = get_settings()
    try:
        async with http_request_session(app_state) as session:
            async with session.get(
                OPENAI_MODELS_URL,
                headers={"Authorization": f"Bearer {settings.get_openai_api_key()}"},
                timeout=aiohttp.ClientTimeout(total=HealthCheckConfig.DEPENDENCY_CHECK_TIMEOUT_SEC),
            ) as response:
                if response.status == 200:
                    return {"status": "healthy", "message": "OpenAI API accessible"}
                return {"status": "unhealthy", "message": f"OpenAI API returned {response.status}"}
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.error(f"OpenAI health check failed: {e}")
        return {
            "status": "unhealthy",
            "message": f"OpenAI API error: {str(e)}",
            "error": type(e).__name__
        }


async def check_twilio_health() -> Dict[str, Any]:
    """Check Twilio API connectivity."""
    settings = get_settings()
    try:
        client = Client(settings.twilio_account_sid, settings.get_twilio_auth_token())
        account = await asyncio.wait_for(
            asyncio.to_thread(client.api.accounts(settings.twilio_account_sid).fetch),
            timeout=HealthCheckConfig.DEPENDENCY_CHECK_TIMEOUT_SEC,
        )
        return {
            "status": "healthy",
            "message": "Twilio API accessible",
            "account_status": account.status
        }
    except Exception as e:
        logger.error(f"Twilio health check failed: {e}")
        return {
            "status": "unhealthy",
            "message": f"Twilio API error: {str(e)}",
            "error": type(e).__name__
        }


def _probe_smtp(host: str, port: int) -> None:
    with smtplib.SMTP(host, port, timeout=HealthCheckConfig.DEPENDENCY_CHECK_TIMEOUT_SEC) as server:
        server.starttls()


async def check_smtp_health() -> Dict[str, Any]:
    """Check SMTP server connectivity without logging in."""
    settings = get_settings()
    if not settings.enable_email_notifications or not settings.smtp_email or not settings.get_smtp_password():
        return {"status": "skipped", "message": "SMTP not configured"}

    try:
        await asyncio.to_thread(_probe_smtp, settings.smtp_host, settings.smtp_port)
        return {"status": "healthy", "message": "SMTP server accessible"}
    except (OSError, smtplib.SMTPException) as e:
        logger.error(f"SMTP health check failed: {e}")
        return {
            "status": "unhealthy",
            "message": f"SMTP error: {str(e)}",
            "error": type(e).__name__
        }


async def check_repository_health(app_state) -> Dict[str, Any]:
    repository = getattr(app_state, "repository", None)
    if repository is None:
        return {"status": "unhealthy", "message": "Repository not initialized"}
    healthy = await repository.health_check()
    return {
        "status": "healthy" if healthy else "unhealthy",
        "backend": type(repository).__name__,
    }


async def check_remote_scoring_health(app_state) -> Dict[str, Any]:
    settings = get_settings()
    client = getattr(app_state, "remote_scoring_client", None)
    if not settings.is_remote_scoring_enabled or client is None:
        return {"status": "skipped", "message": "Remote scoring disabled"}
    result = await client.health_check()
    return {"status": "healthy" if result.get("healthy") else "unhealthy", **result}


@router.get("/health")
async def health_check():
    """Basic health check - returns 200 if service is running."""
    return {
        "status": "healthy",
        "service": "disability-intake-line",
        "active_calls": active_call_count(),
        "timestamp": _now()
    }


@router.get("/health/detailed")
async def detailed_health_check(request: Request):
    """Comprehensive health check with dependency verification.

    Returns 200 if all critical dependencies are healthy, 503 otherwise.
    """
    logger.info("Running detailed health check")
    app_state = request.app.state

    checks_coros = {
        "openai": check_openai_health(app_state),
        "twilio": check_twilio_health(),
        "repository": check_repository_health(app_state),
        "smtp": check_smtp_health(),
        "remote_scoring": check_remote_scoring_health(app_state),
    }

    checks = {}
    results = await asyncio.gather(*checks_coros.values(), return_exceptions=True)
    for name, result in zip(checks_coros, results):
        if isinstance(result, Exception):
            checks[name] = {
                "status": "error",
                "message": str(result),
                "error": type(result).__name__
            }
        else:
            checks[name] = result

    # Critical dependencies: the call cannot happen without them
    critical_deps = ["openai", "twilio", "repository"]
    critical_healthy = all(
        checks.get(dep, {}).get("status") == "healthy"
        for dep in critical_deps
    )

    # Optional dependencies degrade follow-up only (skipped is ok)
    optional_deps = ["smtp", "remote_scoring"]
    optional_healthy = all(
        checks.get(dep, {}).get("status") in ["healthy", "skipped"]
        for dep in optional_deps
    )

    all_healthy = critical_healthy and optional_healthy
    circuit_breakers = get_circuit_status()

    response = {
        "status": "healthy" if all_healthy else "unhealthy",
        "timestamp": _now(),
        "checks": checks,
        "circuit_breakers": circuit_breakers,
        "summary": {
            "critical_healthy": critical_healthy,
            "optional_healthy": optional_healthy,
            "total_checks": len(checks),
            "healthy_count": sum(1 for c in checks.values() if c.get("status") == "healthy"),
            "unhealthy_count": sum(1 for c in checks.values() if c.get("status") == "unhealthy"),
            "skipped_count": sum(1 for c in checks.values() if c.get("status") == "skipped"),
            "circuit_breakers_open": sum(1 for cb in circuit_breakers.values() if cb.get("state") == "open")
        }
    }

    return JSONResponse(content=response, status_code=200 if all_healthy else 503)


@router.get("/health/live")
async def liveness_probe():
    """Kubernetes liveness probe - checks if service is running."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_probe(request: Request):
    """Kubernetes readiness probe - checks if service can handle traffic."""
    settings = get_settings()
    problems = []
    if is_shutting_down():
        problems.append("Shutting down")
    if not settings.get_openai_api_key():
        problems.append("OpenAI API key not configured")
    if not settings.twilio_account_sid:
        problems.append("Twilio account SID not configured")
    if getattr(request.app.state, "call_services", None) is None:
        problems.append("Call services not initialized")

    if problems:
        logger.error(f"Readiness check failed: {'; '.join(problems)}")
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "error": "; ".join(problems)}
        )
    return {"status": "ready"}

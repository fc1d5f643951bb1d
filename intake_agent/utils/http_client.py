"""Shared aiohttp session handling.

The FastAPI lifespan creates one pooled session on ``app.state``; code
running outside a request (health probes, tests, finalize tasks that
outlive the request) falls back to a lazily created module session.
"""
import aiohttp
from typing import Optional
from contextlib import asynccontextmanager

from intake_agent.config.constants import APITimeouts
from intake_agent.utils.logger import get_logger

logger = get_logger(__name__)

_fallback_session: Optional[aiohttp.ClientSession] = None


def create_session(limit: int = 100, limit_per_host: int = 20) -> aiohttp.ClientSession:
    """Build a pooled session with the default request timeout."""
    connector = aiohttp.TCPConnector(
        limit=limit,
        limit_per_host=limit_per_host,
        ttl_dns_cache=300,
    )
    return aiohttp.ClientSession(
        connector=connector,
        timeout=aiohttp.ClientTimeout(total=APITimeouts.DEFAULT_TIMEOUT_SEC)
    )


async def get_fallback_session() -> aiohttp.ClientSession:
    """Get or create the module-level session for standalone usage."""
    global _fallback_session
    if _fallback_session is None or _fallback_session.closed:
        _fallback_session = create_session(limit=20, limit_per_host=10)
        logger.debug("Created fallback HTTP session")
    return _fallback_session


async def close_fallback_session():
    """Close the fallback session. Call during application shutdown."""
    global _fallback_session
    if _fallback_session and not _fallback_session.closed:
        await _fallback_session.close()
        _fallback_session = None
        logger.debug("Closed fallback HTTP session")


@asynccontextmanager
async def http_request_session(app_state=None):
    """Yield ``app_state.http_session`` when present, else the fallback session.

    Example:
        async with http_request_session(request.app.state) as session:
            async with session.get(url) as response:
                data = await response.json()
    """
    if app_state is not None and getattr(app_state, "http_session", None) is not None:
        yield app_state.http_session
    else:
        yield await get_fallback_session()

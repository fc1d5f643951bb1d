"""Graceful shutdown handler for the intake line.

Ensures in-flight calls get the chance to finalize their intake when the
application receives shutdown signals (SIGTERM, SIGINT).
"""
import asyncio
import signal
from typing import Any, Optional, Set

from intake_agent.config.constants import WebSocketConfig
from intake_agent.utils.logger import get_logger

logger = get_logger(__name__)

# Global state for shutdown coordination
_shutdown_event: Optional[asyncio.Event] = None
_active_calls: Set[Any] = set()
_shutdown_timeout_seconds = WebSocketConfig.GRACEFUL_SHUTDOWN_TIMEOUT_SEC
_teardown_timeout_seconds = 15  # Maximum time to wait for forced calls to finalize


def init_shutdown_handler():
    """Initialize the shutdown event and signal handlers.

    Should be called during application startup (in lifespan context).
    """
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    signal.signal(signal.SIGTERM, _handle_shutdown_signal)
    signal.signal(signal.SIGINT, _handle_shutdown_signal)

    logger.info("Graceful shutdown handler initialized (SIGTERM, SIGINT)")


def _handle_shutdown_signal(signum, frame):
    """Signal handler for SIGTERM and SIGINT."""
    signal_name = signal.Signals(signum).name
    logger.warning(f"Received {signal_name} signal - initiating graceful shutdown")

    if _shutdown_event:
        _shutdown_event.set()


def request_shutdown():
    """Stop accepting new calls without a signal (used by tests and lifespan)."""
    if _shutdown_event:
        _shutdown_event.set()


async def shutdown():
    """Perform graceful shutdown of the application.

    Shutdown sequence:
    1. Stop accepting new calls
    2. Wait for active calls to complete (with timeout)
    3. Close the carrier socket of calls still running so each one
       finalizes its intake before the process exits

    Returns after shutdown is complete or timeout is reached.
    """
    logger.info("Starting graceful shutdown sequence...")
    request_shutdown()

    loop = asyncio.get_running_loop()
    if _active_calls:
        logger.info(f"Waiting up to {_shutdown_timeout_seconds}s for {len(_active_calls)} active calls to complete...")
        wait_start = loop.time()
        while _active_calls and loop.time() - wait_start < _shutdown_timeout_seconds:
            await asyncio.sleep(WebSocketConfig.SHUTDOWN_CHECK_INTERVAL_SEC)

    if _active_calls:
        logger.warning(f"Shutdown timeout reached - ending {len(_active_calls)} calls")
        for call in list(_active_calls):
            try:
                await call.bridge.close(code=1001, reason="Service shutting down")
            except Exception as e:
                logger.error(f"Error closing call {getattr(call, 'call_sid', '?')}: {e}")

        wait_start = loop.time()
        while _active_calls and loop.time() - wait_start < _teardown_timeout_seconds:
            await asyncio.sleep(0.2)

        if _active_calls:
            logger.warning(f"Shutdown proceeding with {len(_active_calls)} calls still finalizing")
    else:
        logger.info("All active calls completed successfully")

    logger.info("Graceful shutdown complete")


def register_call(call) -> None:
    """Track a running call orchestrator."""
    _active_calls.add(call)
    logger.debug(f"Registered call for shutdown tracking: {getattr(call, 'call_sid', id(call))}")


def unregister_call(call) -> None:
    """Stop tracking a call after it finished."""
    _active_calls.discard(call)


def active_call_count() -> int:
    return len(_active_calls)


def is_shutting_down() -> bool:
    """Check if the application is currently shutting down."""
    return _shutdown_event is not None and _shutdown_event.is_set()

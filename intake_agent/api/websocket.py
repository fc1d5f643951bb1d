"""WebSocket handler for Twilio MediaStream connections.

Each connection becomes one ``CallOrchestrator`` built from the shared
services stored on ``app.state`` during startup.
"""
from fastapi import WebSocket

from intake_agent.core.call_orchestrator import CallOrchestrator
from intake_agent.core.shutdown import is_shutting_down
from intake_agent.services.telephony_bridge import TelephonyBridge
from intake_agent.utils.logger import get_logger

logger = get_logger(__name__)


async def handle_media_stream(websocket: WebSocket, call_sid: str):
    """Handle Twilio MediaStream WebSocket connection."""
    if is_shutting_down():
        logger.warning(f"Rejecting new call {call_sid} - system is shutting down")
        await websocket.close(code=1001, reason="Service shutting down")
        return

    bridge = TelephonyBridge(websocket, call_sid)
    await bridge.accept()
    logger.info(f"MediaStream connected for {call_sid}")

    orchestrator = CallOrchestrator(bridge, websocket.app.state.call_services)
    result = await orchestrator.run()

    if result is not None:
        logger.info(
            f"MediaStream disconnected for {call_sid}: intake {result.intake_id} "
            f"outcome={result.outcome.value}"
        )
    else:
        logger.info(f"MediaStream disconnected for {call_sid} without an intake")

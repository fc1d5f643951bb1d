"""In-memory implementation of the intake repository."""
from typing import Any, Dict, Optional
import asyncio

from intake_agent.core.intake_repository_base import IntakeRepositoryBase
from intake_agent.core.models import CallbackRequest, IntakeResult, generate_id
from intake_agent.utils.logger import get_logger
from intake_agent.utils.metrics import repository_operations

logger = get_logger(__name__)


class InMemoryIntakeRepository(IntakeRepositoryBase):
    """In-memory implementation of the intake repository.

    Stores records in Python dictionaries. Fast and simple, but
    everything is lost on restart. Use RedisIntakeRepository when
    intakes must survive a deploy.
    """

    def __init__(self):
        self._intakes: Dict[str, IntakeResult] = {}
        self._callbacks: Dict[str, CallbackRequest] = {}
        self._call_metadata: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def save_intake(self, result: IntakeResult) -> str:
        async with self._lock:
            self._intakes[result.intake_id] = result
        repository_operations.labels(operation="save_intake", backend="memory").inc()
        logger.info(f"Saved intake {result.intake_id} for call {result.call_id}")
        return result.intake_id

    async def save_callback_request(self, request: CallbackRequest) -> str:
        message_id = generate_id("MSG")
        async with self._lock:
            self._callbacks[message_id] = request
        repository_operations.labels(operation="save_callback", backend="memory").inc()
        logger.info(f"Saved callback request {message_id} for call {request.call_id}")
        return message_id

    async def get_intake(self, intake_id: str) -> Optional[IntakeResult]:
        async with self._lock:
            return self._intakes.get(intake_id)

    async def get_callback_request(self, message_id: str) -> Optional[CallbackRequest]:
        async with self._lock:
            return self._callbacks.get(message_id)

    async def attach_call_metadata(self, call_sid: str, **fields: Any) -> None:
        async with self._lock:
            self._call_metadata.setdefault(call_sid, {}).update(fields)
        repository_operations.labels(operation="attach_metadata", backend="memory").inc()

    async def get_call_metadata(self, call_sid: str) -> Dict[str, Any]:
        async with self._lock:
            return dict(self._call_metadata.get(call_sid, {}))

    async def health_check(self) -> bool:
        return True

    def get_intake_count(self) -> int:
        """Number of stored intakes (for monitoring and tests)."""
        return len(self._intakes)

"""Redis-backed implementation of the intake repository."""
from typing import Any, Dict, Optional
import json
from redis.asyncio import Redis
from redis.exceptions import RedisError

from intake_agent.core.intake_repository_base import IntakeRepositoryBase
from intake_agent.core.models import CallbackRequest, IntakeResult, generate_id
from intake_agent.utils.logger import get_logger
from intake_agent.utils.metrics import repository_operations

logger = get_logger(__name__)


class RedisIntakeRepository(IntakeRepositoryBase):
    """Redis-backed implementation of the intake repository.

    Provides:
    - Intakes that survive restarts
    - Horizontal scaling (multiple instances share storage)
    - Automatic TTL for cleanup

    Keys:
    - ``{prefix}:intake:{intake_id}``: intake result JSON
    - ``{prefix}:callback:{message_id}``: callback request JSON
    - ``{prefix}:call:{call_sid}``: hash of carrier metadata for a call
    """

    def __init__(
        self,
        redis_client: Redis,
        key_prefix: str = "intakeline",
        ttl_seconds: int = 60 * 60 * 24 * 30
    ):
        """Initialize Redis repository.

        Args:
            redis_client: Async Redis client instance
            key_prefix: Prefix for Redis keys
            ttl_seconds: Time-to-live for stored entries (default: 30 days)
        """
        self.redis = redis_client
        self.key_prefix = key_prefix
        self.ttl_seconds = ttl_seconds

    def _key(self, kind: str, identifier: str) -> str:
        return f"{self.key_prefix}:{kind}:{identifier}"

    async def save_intake(self, result: IntakeResult) -> str:
        """Store the intake JSON and index it by call SID.

        Raises:
            RedisError: If the write fails; the caller decides how to degrade
        """
        try:
            await self.redis.setex(
                self._key("intake", result.intake_id),
                self.ttl_seconds,
                result.model_dump_json()
            )
            call_key = self._key("call", result.call_id)
            await self.redis.hset(call_key, "intake_id", result.intake_id)
            await self.redis.expire(call_key, self.ttl_seconds)

            repository_operations.labels(operation="save_intake", backend="redis").inc()
            logger.info(
                "Saved intake in Redis",
                extra={"intake_id": result.intake_id, "call_id": result.call_id}
            )
            return result.intake_id

        except RedisError as e:
            logger.error(
                f"Redis error saving intake {result.intake_id}: {e}",
                exc_info=True
            )
            raise

    async def save_callback_request(self, request: CallbackRequest) -> str:
        message_id = generate_id("MSG")
        try:
            await self.redis.setex(
                self._key("callback", message_id),
                self.ttl_seconds,
                request.model_dump_json()
            )
            repository_operations.labels(operation="save_callback", backend="redis").inc()
            logger.info(f"Saved callback request {message_id} for call {request.call_id}")
            return message_id

        except RedisError as e:
            logger.error(
                f"Redis error saving callback request for {request.call_id}: {e}",
                exc_info=True
            )
            raise

    async def get_intake(self, intake_id: str) -> Optional[IntakeResult]:
        try:
            raw = await self.redis.get(self._key("intake", intake_id))
            if not raw:
                return None
            return IntakeResult.model_validate_json(raw)

        except RedisError as e:
            logger.error(f"Redis error getting intake {intake_id}: {e}", exc_info=True)
            return None
        except ValueError as e:
            logger.error(f"Error deserializing intake {intake_id}: {e}", exc_info=True)
            return None

    async def attach_call_metadata(self, call_sid: str, **fields: Any) -> None:
        if not fields:
            return
        call_key = self._key("call", call_sid)
        try:
            await self.redis.hset(
                call_key,
                mapping={key: json.dumps(value) for key, value in fields.items()}
            )
            await self.redis.expire(call_key, self.ttl_seconds)
            repository_operations.labels(operation="attach_metadata", backend="redis").inc()

        except RedisError as e:
            logger.error(
                f"Redis error attaching metadata for {call_sid}: {e}",
                exc_info=True
            )
            raise

    async def get_call_metadata(self, call_sid: str) -> Dict[str, Any]:
        try:
            raw = await self.redis.hgetall(self._key("call", call_sid))
        except RedisError as e:
            logger.error(f"Redis error reading metadata for {call_sid}: {e}")
            return {}

        metadata = {}
        for key, value in raw.items():
            key = key.decode("utf-8") if isinstance(key, bytes) else key
            value = value.decode("utf-8") if isinstance(value, bytes) else value
            try:
                metadata[key] = json.loads(value)
            except ValueError:
                # intake_id is stored as a bare string
                metadata[key] = value
        return metadata

    async def health_check(self) -> bool:
        """Check if Redis connection is healthy."""
        try:
            await self.redis.ping()
            return True
        except RedisError:
            return False

    async def close(self) -> None:
        await self.redis.aclose()
        logger.info("Redis connection closed")

"""Factory for creating the intake repository based on configuration."""
from typing import Optional
from redis.asyncio import Redis

from intake_agent.config.settings import Settings, get_settings, get_redis_url
from intake_agent.core.intake_repository_base import IntakeRepositoryBase
from intake_agent.core.intake_repository_memory import InMemoryIntakeRepository
from intake_agent.core.intake_repository_redis import RedisIntakeRepository
from intake_agent.utils.logger import get_logger

logger = get_logger(__name__)


class IntakeRepositoryFactory:
    """Factory for creating intake repositories based on configuration."""

    _instance: Optional[IntakeRepositoryBase] = None

    @classmethod
    async def create_repository(cls, settings: Optional[Settings] = None) -> IntakeRepositoryBase:
        """Create and return a repository based on configuration.

        Returns:
            InMemoryIntakeRepository or RedisIntakeRepository
        """
        if cls._instance is not None:
            return cls._instance

        settings = settings or get_settings()

        if settings.use_redis:
            logger.info("Initializing Redis-backed intake repository")
            cls._instance = await cls._create_redis_repository(settings)
        else:
            logger.info("Initializing in-memory intake repository")
            cls._instance = InMemoryIntakeRepository()

        return cls._instance

    @classmethod
    async def _create_redis_repository(cls, settings: Settings) -> IntakeRepositoryBase:
        """Connect to Redis, falling back to memory when it is unreachable."""
        redis_client = None
        try:
            redis_client = Redis.from_url(
                get_redis_url(settings),
                encoding="utf-8",
                decode_responses=False  # We handle JSON encoding/decoding
            )

            # Test connection
            await redis_client.ping()
            logger.info(
                "Redis connection established",
                extra={
                    "host": settings.redis_host,
                    "port": settings.redis_port,
                    "db": settings.redis_db
                }
            )

            return RedisIntakeRepository(
                redis_client,
                ttl_seconds=settings.intake_ttl_seconds
            )

        except Exception as e:
            logger.error(
                f"Failed to connect to Redis: {e}. Falling back to in-memory intake repository.",
                exc_info=True
            )
            if redis_client is not None:
                await redis_client.aclose()
            return InMemoryIntakeRepository()

    @classmethod
    async def close(cls) -> None:
        """Close the repository backend if open."""
        if cls._instance is not None:
            await cls._instance.close()
        cls._instance = None


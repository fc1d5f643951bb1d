"""Abstract base class for intake persistence."""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from intake_agent.core.models import CallbackRequest, IntakeResult


class IntakeRepositoryBase(ABC):
    """Stores finished intakes, callback messages and call metadata.

    Implementations can use different backends (in-memory, Redis, etc.)
    while maintaining a consistent interface.
    """

    @abstractmethod
    async def save_intake(self, result: IntakeResult) -> str:
        """Persist a finalized intake.

        Args:
            result: Finalized intake result

        Returns:
            The intake id
        """

    @abstractmethod
    async def save_callback_request(self, request: CallbackRequest) -> str:
        """Persist a callback message.

        Returns:
            Generated message id
        """

    @abstractmethod
    async def get_intake(self, intake_id: str) -> Optional[IntakeResult]:
        """Get an intake by id, or None if unknown."""

    @abstractmethod
    async def attach_call_metadata(self, call_sid: str, **fields: Any) -> None:
        """Merge carrier metadata (duration, recording URL, ...) for a call.

        Metadata may arrive before or after the intake is saved.
        """

    @abstractmethod
    async def get_call_metadata(self, call_sid: str) -> Dict[str, Any]:
        """Metadata attached to a call, empty if none."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Check whether the backend is reachable."""

    async def close(self) -> None:
        """Release backend resources."""

"""Scoring strategies used when an intake is finalized.

``LocalScoringStrategy`` runs the built-in engine. ``RemoteScoringStrategy``
delegates to the assessment API. ``FallbackScoringStrategy`` composes the
two: one attempt at the primary, then the fallback on any failure.
"""
from abc import ABC, abstractmethod
from typing import Optional

from intake_agent.config.settings import Settings, get_settings
from intake_agent.core.models import CallerInfo, CallFlags, IntakeRecord, ScoringResult
from intake_agent.core.scoring_engine import ScoringThresholds, calculate_score
from intake_agent.services.remote_scoring_client import RemoteScoringClient
from intake_agent.utils.logger import get_logger
from intake_agent.utils.metrics import remote_scoring_requests

logger = get_logger(__name__)


class ScoringStrategy(ABC):
    """Produces a ScoringResult for a finished intake."""

    #: True when scores come from outside the process and may differ from a
    #: score computed locally during the call.
    delegates = False

    @abstractmethod
    async def score(
        self,
        *,
        call_id: str,
        intake_id: str,
        record: IntakeRecord,
        caller: CallerInfo,
        flags: CallFlags,
        call_duration: Optional[int] = None,
    ) -> ScoringResult:
        """Score an intake.

        Raises:
            Exception: Implementations may fail; callers decide how to degrade
        """


class LocalScoringStrategy(ScoringStrategy):
    """The deterministic in-process scoring engine."""

    def __init__(self, thresholds: Optional[ScoringThresholds] = None):
        self.thresholds = thresholds or ScoringThresholds()

    def score_record(self, record: IntakeRecord) -> ScoringResult:
        return calculate_score(record, self.thresholds)

    async def score(self, *, record: IntakeRecord, **_context) -> ScoringResult:
        return self.score_record(record)


class RemoteScoringStrategy(ScoringStrategy):
    """Delegates to the remote assessment API."""

    delegates = True

    def __init__(self, client: RemoteScoringClient):
        self.client = client

    async def score(
        self,
        *,
        call_id: str,
        intake_id: str,
        record: IntakeRecord,
        caller: CallerInfo,
        flags: CallFlags,
        call_duration: Optional[int] = None,
    ) -> ScoringResult:
        return await self.client.assess(
            call_id, intake_id, record, caller, flags, call_duration
        )


class FallbackScoringStrategy(ScoringStrategy):
    """Try ``primary`` once; on any failure use ``fallback``."""

    delegates = True

    def __init__(self, primary: ScoringStrategy, fallback: ScoringStrategy):
        self.primary = primary
        self.fallback = fallback

    async def score(self, **context) -> ScoringResult:
        try:
            return await self.primary.score(**context)
        except Exception as e:
            logger.warning(
                f"Primary scoring failed for call {context.get('call_id')}, "
                f"using fallback: {type(e).__name__}: {e}"
            )
            remote_scoring_requests.labels(status='fallback').inc()
            return await self.fallback.score(**context)


def build_scoring_strategy(
    settings: Optional[Settings] = None,
    remote_client: Optional[RemoteScoringClient] = None,
) -> ScoringStrategy:
    """Pick the strategy the configuration asks for.

    Remote scoring needs both the feature flag and an API key; without
    ``remote_scoring_fallback_to_local`` a remote failure propagates.
    """
    settings = settings or get_settings()
    local = LocalScoringStrategy(ScoringThresholds.from_settings(settings))

    if not settings.is_remote_scoring_enabled:
        return local

    remote = RemoteScoringStrategy(remote_client or RemoteScoringClient(settings))
    if settings.remote_scoring_fallback_to_local:
        return FallbackScoringStrategy(remote, local)
    return remote

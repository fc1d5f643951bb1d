"""Unit tests for per-call orchestration."""
from unittest.mock import AsyncMock, MagicMock

import pytest

from intake_agent.core.call_orchestrator import CallOrchestrator, CallServices, caller_from_parameters
from intake_agent.core.models import CallOutcome, Speaker
from intake_agent.core.shutdown import active_call_count
from intake_agent.services.realtime_client import RealtimeConnectionError
from intake_agent.services.scoring_strategy import LocalScoringStrategy


class FakeBridge:
    """Carrier side that replays a fixed list of events."""

    def __init__(self, events, call_sid="CA1"):
        self._events = events
        self.call_sid = call_sid
        self.stream_sid = None
        self.custom_parameters = {}
        self.send_audio = AsyncMock(return_value=True)
        self.clear = AsyncMock(return_value=True)
        self.close = AsyncMock()

    async def events(self):
        for event in self._events:
            if event["event"] == "start":
                self.stream_sid = "MZ1"
                self.custom_parameters = event["start"]["customParameters"]
            yield event


def _fake_realtime():
    realtime = MagicMock()
    realtime.connect = AsyncMock()
    realtime.close = AsyncMock()
    realtime.send_audio = AsyncMock()
    realtime.is_connected = True
    return realtime


START = {"event": "start", "start": {"customParameters": {"callerPhone": "+15551234567", "callerState": "AZ"}}}
MEDIA = {"event": "media", "media": {"payload": "AAAA"}}
STOP = {"event": "stop"}


@pytest.fixture
def realtime():
    return _fake_realtime()


@pytest.fixture
def factory(realtime):
    return MagicMock(return_value=realtime)


@pytest.fixture
def services(mock_settings, repository, mock_email_service, mock_sms_service, factory):
    return CallServices(
        settings=mock_settings,
        repository=repository,
        scoring_strategy=LocalScoringStrategy(),
        email_service=mock_email_service,
        sms_service=mock_sms_service,
        realtime_factory=factory,
    )


@pytest.mark.unit
class TestCallOrchestrator:
    """Test the lifecycle of one call."""

    def test_caller_from_parameters(self):
        """Test that empty parameters become None."""
        caller = caller_from_parameters({"callerPhone": "+15551234567", "callerCity": ""})

        assert caller.caller_phone == "+15551234567"
        assert caller.caller_city is None

    @pytest.mark.asyncio
    async def test_stop_finalizes_and_tears_down(self, services, realtime, factory, repository, mock_email_service):
        """Test a normal call: audio relayed, intake finalized, both sides closed."""
        bridge = FakeBridge([{"event": "connected"}, START, MEDIA, STOP])
        orchestrator = CallOrchestrator(bridge, services)

        result = await orchestrator.run()

        assert orchestrator.status == "completed"
        realtime.connect.assert_awaited_once()
        realtime.send_audio.assert_awaited_once_with("AAAA")
        assert factory.call_args.kwargs["on_audio"] is bridge.send_audio

        assert result is not None
        assert result.caller.caller_state == "AZ"
        assert result.outcome == CallOutcome.DISCONNECTED
        assert await repository.get_intake(result.intake_id) is result
        mock_email_service.send_intake_notification.assert_awaited_once()

        realtime.close.assert_awaited_once()
        bridge.close.assert_awaited()
        assert active_call_count() == 0

    @pytest.mark.asyncio
    async def test_bad_frames_do_not_end_call(self, services, realtime):
        """Test that malformed media and mark events are skipped and the call continues."""
        bridge = FakeBridge([
            START,
            {"event": "media", "media": "garbage"},
            {"event": "mark", "mark": "garbage"},
            MEDIA,
            STOP,
        ])
        orchestrator = CallOrchestrator(bridge, services)

        result = await orchestrator.run()

        assert orchestrator.status == "completed"
        realtime.send_audio.assert_awaited_once_with("AAAA")
        assert result is not None

    @pytest.mark.asyncio
    async def test_failed_event_does_not_end_call(self, services, realtime, caplog):
        """Test that an error while relaying one frame leaves later frames flowing."""
        realtime.send_audio.side_effect = [RuntimeError("socket busy"), None]
        bridge = FakeBridge([START, MEDIA, MEDIA, STOP])
        orchestrator = CallOrchestrator(bridge, services)

        await orchestrator.run()

        assert orchestrator.status == "completed"
        assert realtime.send_audio.await_count == 2
        assert "Handling media event failed" in caplog.text

    @pytest.mark.asyncio
    async def test_finalize_failure_still_tears_down(self, services, realtime, repository):
        """Test that a scoring failure at finalize is logged and both sides still close."""
        strategy = MagicMock()
        strategy.delegates = True
        strategy.score = AsyncMock(side_effect=ConnectionError("unreachable"))
        services.scoring_strategy = strategy
        bridge = FakeBridge([START, STOP])
        orchestrator = CallOrchestrator(bridge, services)

        result = await orchestrator.run()

        assert result is None
        assert orchestrator.status == "completed"
        assert repository.get_intake_count() == 0
        realtime.close.assert_awaited_once()
        bridge.close.assert_awaited()
        assert active_call_count() == 0

    @pytest.mark.asyncio
    async def test_caller_hangs_up(self, services):
        """Test that a stream ending without stop still finalizes."""
        orchestrator = CallOrchestrator(FakeBridge([START]), services)

        result = await orchestrator.run()

        assert orchestrator.status == "disconnected"
        assert result is not None

    @pytest.mark.asyncio
    async def test_backend_unavailable(self, services, realtime, mock_email_service):
        """Test that no intake is produced when the speech backend is down."""
        realtime.connect.side_effect = RealtimeConnectionError("refused")
        bridge = FakeBridge([START, MEDIA, STOP])
        orchestrator = CallOrchestrator(bridge, services)

        result = await orchestrator.run()

        assert result is None
        assert orchestrator.status == "backend_unavailable"
        realtime.send_audio.assert_not_called()
        mock_email_service.send_intake_notification.assert_not_called()
        bridge.close.assert_awaited()

    @pytest.mark.asyncio
    async def test_end_call_stops_reprompts(self, services, realtime):
        """Test that a successful end_call marks the speech client as concluding."""
        orchestrator = CallOrchestrator(FakeBridge([]), services)
        orchestrator.session = services.create_session("CA1", caller_from_parameters({}))
        orchestrator.realtime = realtime

        result = await orchestrator._on_function_call("end_call", {"outcome": "completed"})

        assert result["call_ended"] is True
        realtime.mark_concluding.assert_called_once()

    @pytest.mark.asyncio
    async def test_interruption_clears_playback(self, services):
        """Test that barge-in flushes Twilio's audio buffer."""
        bridge = FakeBridge([])
        orchestrator = CallOrchestrator(bridge, services)

        await orchestrator._on_interruption()

        bridge.clear.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_transcript_recorded(self, services):
        """Test that utterances land in the session transcript."""
        orchestrator = CallOrchestrator(FakeBridge([]), services)
        orchestrator.session = services.create_session("CA1", caller_from_parameters({}))

        await orchestrator._on_transcript(Speaker.USER, "I have lupus")

        assert orchestrator.session.record.transcript[-1].text == "I have lupus"

    @pytest.mark.asyncio
    async def test_backend_close_ends_call(self, services):
        """Test that losing the speech backend closes the carrier side."""
        bridge = FakeBridge([])
        orchestrator = CallOrchestrator(bridge, services)

        await orchestrator._on_realtime_close()

        assert orchestrator.status == "backend_disconnected"
        bridge.close.assert_awaited_once()

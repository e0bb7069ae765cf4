"""
tests/unit/test_playback_engine.py

Tests for the speech playback state machine.

Verifies:
✔ Empty text errors without calling any producer
✔ Producers are tried in order; degraded tiers are reported
✔ Starting a new request releases the previous resource first
✔ seek clamps to [0, duration] and is a no-op without a duration
✔ ended / stop return to idle with progress 0
✔ Resource failures surface as "Audio playback failed"
✔ Stale results after stop or dispose are released, never installed
"""

import asyncio
from typing import List, Optional
from unittest.mock import MagicMock

import pytest

from playback.engine import NO_TEXT_MESSAGE, PLAYBACK_FAILED_MESSAGE, PlaybackEngine, PlaybackState
from playback.resource import PlaybackResource
from playback.voices import TTSConfig, get_default_voice_for_engine
from runtime.errors import ErrorHandler, NetworkError, ProducerError, ResourceError, UnsupportedConfigurationError
from runtime.fallback import Producer
from tracing import InMemoryTracer


# ─────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────


class FakeResource(PlaybackResource):
    """In-memory resource driven by the test."""

    def __init__(self, name: str = "fake", duration: float = 10.0, fail_play: bool = False):
        super().__init__(name)
        self._duration = duration
        self._position = 0.0
        self._paused = True
        self.fail_play = fail_play
        self.play_calls = 0
        self.pause_calls = 0

    async def play(self) -> None:
        self.play_calls += 1
        if self.fail_play:
            raise ResourceError("device busy")
        self._dispatch("loadedmetadata")
        self._paused = False

    def pause(self) -> None:
        self.pause_calls += 1
        self._paused = True

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def duration(self) -> float:
        return self._duration

    def _get_position(self) -> float:
        return self._position

    def _set_position(self, value: float) -> None:
        self._position = value

    # test controls
    def advance(self, position: float) -> None:
        self._position = position
        self._dispatch("timeupdate")

    def finish(self) -> None:
        self._dispatch("ended")

    def fail(self, error: Optional[BaseException] = None) -> None:
        self._dispatch("error", error)


class ScriptedProducer:
    """Producer returning queued resources or raising queued errors."""

    def __init__(self, name: str, outcomes: List):
        self.name = name
        self.outcomes = list(outcomes)
        self.calls = []

    async def __call__(self, text, config):
        self.calls.append((text, config))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def make_engine(*producers, **kwargs) -> PlaybackEngine:
    return PlaybackEngine([Producer(p.name, p) for p in producers], **kwargs)


# ─────────────────────────────────────────────────────
# State model
# ─────────────────────────────────────────────────────


class TestPlaybackState:
    def test_initial_state(self):
        state = PlaybackState()
        assert state.status == "idle"
        assert state.progress == 0.0
        assert state.error_message is None

    def test_progress_derived_from_time(self):
        state = PlaybackState(status="playing", current_time=2.5, duration=10.0)
        assert state.progress == 25.0
        assert state.to_dict()["progress"] == 25.0

    def test_progress_zero_without_duration(self):
        assert PlaybackState(current_time=3.0, duration=0.0).progress == 0.0


# ─────────────────────────────────────────────────────
# play
# ─────────────────────────────────────────────────────


class TestPlay:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    async def test_empty_text_errors_without_producer_call(self, text):
        producer = ScriptedProducer("remote", [FakeResource()])
        engine = make_engine(producer)

        await engine.play(text)

        assert engine.state.status == "error"
        assert engine.state.error_message == NO_TEXT_MESSAGE
        assert producer.calls == []

    @pytest.mark.asyncio
    async def test_empty_text_during_playback_releases_resource(self):
        resource = FakeResource(duration=10.0)
        on_play_end = MagicMock()
        engine = make_engine(ScriptedProducer("remote", [resource]), sample_interval_ms=10, on_play_end=on_play_end)

        await engine.play("Hello")
        await engine.play("   ")

        assert engine.state.status == "error"
        assert engine.has_resource is False
        assert engine.sampling is False
        assert resource.released is True
        assert resource.paused is True

        resource.advance(4.0)
        resource.finish()
        await asyncio.sleep(0.03)

        assert engine.state.status == "error"
        assert engine.state.error_message == NO_TEXT_MESSAGE
        assert engine.state.current_time == 0.0
        on_play_end.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_text_during_loading_discards_late_resource(self):
        resource = FakeResource()
        producer = GatedProducer(resource)
        engine = make_engine(producer)

        task = asyncio.create_task(engine.play("Hello"))
        await asyncio.wait_for(producer.entered.wait(), 1.0)
        await engine.play("")
        producer.gate.set()
        await task

        assert resource.released is True
        assert resource.play_calls == 0
        assert engine.state.status == "error"
        assert engine.state.error_message == NO_TEXT_MESSAGE

    @pytest.mark.asyncio
    async def test_successful_play(self):
        resource = FakeResource(duration=4.0)
        producer = ScriptedProducer("remote", [resource])
        on_play_start = MagicMock()
        engine = make_engine(producer, on_play_start=on_play_start)

        await engine.play("Hello there")

        state = engine.state
        assert state.status == "playing"
        assert state.duration == 4.0
        assert state.producer == "remote"
        assert state.tier == 0
        assert state.degraded is False
        assert resource.play_calls == 1
        assert engine.sampling is True
        on_play_start.assert_called_once()
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_fallback_tier_reported_as_degraded(self):
        primary = ScriptedProducer("remote_full", [NetworkError("connection refused")])
        secondary = ScriptedProducer("device_speech", [FakeResource()])
        engine = make_engine(primary, secondary)

        await engine.play("Hello")

        assert engine.state.status == "playing"
        assert engine.state.tier == 1
        assert engine.state.producer == "device_speech"
        assert engine.state.degraded is True
        await engine.aclose()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "errors,message",
        [
            ([NetworkError("timed out"), ProducerError("boom")], "Network error - check your connection"),
            ([UnsupportedConfigurationError("voice Joanna"), ProducerError("boom")],
             "Unsupported voice or engine configuration"),
            ([ProducerError("boom"), ProducerError("bang")], "Speech generation failed"),
        ],
    )
    async def test_all_producers_failing(self, errors, message):
        handler = ErrorHandler()
        engine = make_engine(
            ScriptedProducer("remote", [errors[0]]),
            ScriptedProducer("device", [errors[1]]),
            error_handler=handler,
        )

        await engine.play("Hello")

        assert engine.state.status == "error"
        assert engine.state.error_message == message
        assert engine.has_resource is False
        assert len(handler.recent_errors()) == 1

    @pytest.mark.asyncio
    async def test_new_play_releases_previous_resource_first(self):
        first = FakeResource(name="first")
        second = FakeResource(name="second")
        released_before_second_call = []

        class Recording(ScriptedProducer):
            async def __call__(self, text, config):
                if self.calls:
                    released_before_second_call.append(first.released)
                return await super().__call__(text, config)

        engine = make_engine(Recording("remote", [first, second]))

        await engine.play("one")
        await engine.play("two")

        assert released_before_second_call == [True]
        assert first.pause_calls >= 1
        assert first.listener_count() == 0
        assert engine.state.status == "playing"
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_config_passed_to_play_persists(self):
        producer = ScriptedProducer("remote", [FakeResource(), FakeResource()])
        engine = make_engine(producer)
        config = TTSConfig(engine="standard", voice=get_default_voice_for_engine("standard"))

        await engine.play("one", config)
        await engine.play("two")

        assert engine.config == config
        assert producer.calls[1][1].voice.name == "Brian"
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_incompatible_voice_substituted(self):
        producer = ScriptedProducer("remote", [FakeResource()])
        engine = make_engine(producer)
        joanna = get_default_voice_for_engine("neural")

        await engine.play("Hello", TTSConfig(engine="standard", voice=joanna))

        _, effective = producer.calls[0]
        assert effective.engine == "standard"
        assert effective.voice.engine == "standard"
        assert engine.state.voice_substituted is True
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_resource_play_failure(self):
        resource = FakeResource(fail_play=True)
        engine = make_engine(ScriptedProducer("remote", [resource]))

        await engine.play("Hello")

        assert engine.state.status == "error"
        assert engine.state.error_message == PLAYBACK_FAILED_MESSAGE
        assert resource.released is True


# ─────────────────────────────────────────────────────
# Resource events
# ─────────────────────────────────────────────────────


class TestResourceEvents:
    @pytest.mark.asyncio
    async def test_ended_returns_to_idle(self):
        resource = FakeResource(duration=5.0)
        on_play_end = MagicMock()
        engine = make_engine(ScriptedProducer("remote", [resource]), on_play_end=on_play_end)

        await engine.play("Hello")
        resource.advance(5.0)
        resource.finish()

        assert engine.state.status == "idle"
        assert engine.state.current_time == 0.0
        assert engine.state.progress == 0.0
        assert engine.sampling is False
        assert resource.released is True
        on_play_end.assert_called_once()

    @pytest.mark.asyncio
    async def test_time_update_sets_progress(self):
        resource = FakeResource(duration=8.0)
        engine = make_engine(ScriptedProducer("remote", [resource]))

        await engine.play("Hello")
        resource.advance(2.0)

        assert engine.state.current_time == 2.0
        assert engine.state.progress == 25.0
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_resource_error_after_acquisition(self):
        resource = FakeResource()
        handler = ErrorHandler()
        engine = make_engine(ScriptedProducer("remote", [resource]), error_handler=handler)

        await engine.play("Hello")
        resource.fail(ResourceError("decoder crashed"))

        assert engine.state.status == "error"
        assert engine.state.error_message == PLAYBACK_FAILED_MESSAGE
        assert resource.released is True
        assert handler.recent_errors()[0].component == "playback_engine"

    @pytest.mark.asyncio
    async def test_periodic_sampling_while_playing(self):
        resource = FakeResource(duration=10.0)
        engine = make_engine(ScriptedProducer("remote", [resource]), sample_interval_ms=10)

        await engine.play("Hello")
        resource._position = 5.0
        await asyncio.sleep(0.05)

        assert engine.state.current_time == 5.0
        assert engine.state.progress == 50.0
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_sampling_stops_when_paused(self):
        resource = FakeResource(duration=10.0)
        engine = make_engine(ScriptedProducer("remote", [resource]), sample_interval_ms=10)

        await engine.play("Hello")
        resource.pause()
        await asyncio.sleep(0.05)

        assert engine.sampling is False
        await engine.aclose()


# ─────────────────────────────────────────────────────
# seek / volume / stop
# ─────────────────────────────────────────────────────


class TestTransport:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("target,expected", [(-5, 0.0), (3.0, 3.0), (50, 10.0)])
    async def test_seek_clamps(self, target, expected):
        resource = FakeResource(duration=10.0)
        engine = make_engine(ScriptedProducer("remote", [resource]))

        await engine.play("Hello")
        engine.seek(target)

        assert resource.current_time == expected
        assert engine.state.current_time == expected
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_seek_to_end_reports_full_progress(self):
        engine = make_engine(ScriptedProducer("remote", [FakeResource(duration=10.0)]))
        await engine.play("Hello")
        engine.seek(10.0)
        assert engine.state.progress == 100.0
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_seek_without_duration_is_noop(self):
        resource = FakeResource(duration=0.0)
        engine = make_engine(ScriptedProducer("remote", [resource]))

        await engine.play("Hello")
        engine.seek(3.0)

        assert resource.current_time == 0.0
        assert engine.state.current_time == 0.0
        await engine.aclose()

    def test_seek_without_resource_is_noop(self):
        engine = make_engine(ScriptedProducer("remote", []))
        engine.seek(3.0)
        assert engine.state == PlaybackState()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("requested,expected", [(1.5, 1.0), (-1, 0.0), (0.4, 0.4)])
    async def test_volume_clamped(self, requested, expected):
        resource = FakeResource()
        engine = make_engine(ScriptedProducer("remote", [resource]))

        await engine.play("Hello")
        engine.set_volume(requested)

        assert resource.volume == expected
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_stop_releases_and_resets(self):
        resource = FakeResource()
        engine = make_engine(ScriptedProducer("remote", [resource]))

        await engine.play("Hello")
        resource.advance(4.0)
        engine.stop()

        assert engine.state.status == "idle"
        assert engine.state.current_time == 0.0
        assert engine.state.duration == 0.0
        assert resource.paused is True
        assert resource.released is True
        assert engine.sampling is False

    def test_stop_is_idempotent(self):
        engine = make_engine(ScriptedProducer("remote", []))
        engine.stop()
        engine.stop()
        assert engine.state.status == "idle"

    @pytest.mark.asyncio
    async def test_stop_clears_error(self):
        engine = make_engine(ScriptedProducer("remote", []))
        await engine.play("")
        engine.stop()
        assert engine.state.status == "idle"
        assert engine.state.error_message is None


# ─────────────────────────────────────────────────────
# Stale results and teardown
# ─────────────────────────────────────────────────────


class GatedProducer:
    """Producer that waits for the test before returning its resource."""

    name = "slow_remote"

    def __init__(self, resource: FakeResource):
        self.resource = resource
        self.gate = asyncio.Event()
        self.entered = asyncio.Event()

    async def __call__(self, text, config):
        self.entered.set()
        await self.gate.wait()
        return self.resource


class TestStaleResults:
    @pytest.mark.asyncio
    async def test_stop_during_loading_discards_late_resource(self):
        resource = FakeResource()
        producer = GatedProducer(resource)
        engine = make_engine(producer)

        task = asyncio.create_task(engine.play("Hello"))
        await asyncio.wait_for(producer.entered.wait(), 1.0)
        assert engine.state.status == "loading"

        engine.stop()
        producer.gate.set()
        await task

        assert resource.released is True
        assert resource.play_calls == 0
        assert engine.has_resource is False
        assert engine.state.status == "idle"

    @pytest.mark.asyncio
    async def test_dispose_during_loading_discards_late_resource(self):
        resource = FakeResource()
        producer = GatedProducer(resource)
        state_changes = MagicMock()
        engine = make_engine(producer, on_state_change=state_changes)

        task = asyncio.create_task(engine.play("Hello"))
        await asyncio.wait_for(producer.entered.wait(), 1.0)
        engine.dispose()
        calls_at_dispose = state_changes.call_count
        producer.gate.set()
        await task

        assert resource.released is True
        assert engine.alive is False
        assert state_changes.call_count == calls_at_dispose

    @pytest.mark.asyncio
    async def test_dispose_while_playing_cancels_sampling_and_releases(self):
        resource = FakeResource(duration=10.0)
        on_play_end = MagicMock()
        state_changes = MagicMock()
        engine = make_engine(
            ScriptedProducer("remote", [resource]),
            sample_interval_ms=10,
            on_play_end=on_play_end,
            on_state_change=state_changes,
        )

        await engine.play("Hello")
        sampler = engine._sampler
        engine.dispose()
        calls_at_dispose = state_changes.call_count
        await asyncio.sleep(0.03)

        assert sampler.cancelled() is True
        assert engine.sampling is False
        assert engine.has_resource is False
        assert resource.pause_calls >= 1
        assert resource.released is True
        assert resource.listener_count() == 0

        resource.advance(5.0)
        resource.finish()
        resource.fail(ResourceError("late"))

        assert state_changes.call_count == calls_at_dispose
        on_play_end.assert_not_called()
        assert engine.state == PlaybackState()

    @pytest.mark.asyncio
    async def test_aclose_while_playing_awaits_sampler(self):
        resource = FakeResource(duration=10.0)
        engine = make_engine(ScriptedProducer("remote", [resource]), sample_interval_ms=10)

        await engine.play("Hello")
        sampler = engine._sampler
        await engine.aclose()

        assert sampler.done() is True
        assert engine.alive is False
        assert resource.released is True

    @pytest.mark.asyncio
    async def test_play_after_dispose_ignored(self):
        producer = ScriptedProducer("remote", [FakeResource()])
        engine = make_engine(producer)
        engine.dispose()

        await engine.play("Hello")

        assert producer.calls == []

    @pytest.mark.asyncio
    async def test_events_from_released_resource_ignored(self):
        first = FakeResource(name="first")
        engine = make_engine(ScriptedProducer("remote", [first, FakeResource(name="second")]))

        await engine.play("one")
        await engine.play("two")
        first.finish()

        assert engine.state.status == "playing"
        assert engine.state.producer == "remote"
        await engine.aclose()


# ─────────────────────────────────────────────────────
# Tracing
# ─────────────────────────────────────────────────────


class TestPlaybackTracing:
    @pytest.mark.asyncio
    async def test_events_recorded(self):
        tracer = InMemoryTracer()
        resource = FakeResource()
        engine = make_engine(ScriptedProducer("remote", [resource]), tracer=tracer)

        await engine.play("Hello")
        resource.finish()

        names = tracer.store.names()
        assert names[0] == "playback_loading"
        assert "fallback_resolved" in names
        assert "playback_resolved" in names
        assert "playback_started" in names
        assert names[-1] == "playback_ended"

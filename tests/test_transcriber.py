"""Tests for the incremental transcriber."""

import asyncio
from unittest.mock import MagicMock

import numpy as np

from stayhard_assistant.assistant.timing import ManualScheduler
from stayhard_assistant.assistant.transcriber import AmplitudeInfo, IncrementalTranscriber
from stayhard_assistant.config import TranscriberSettings
from stayhard_assistant.stt.base import TranscriptionResult

RATE = 16000


def _loud(seconds: float) -> np.ndarray:
    return np.full(int(seconds * RATE), 8000, dtype=np.int16)


def _make(text: str = "", **overrides):
    settings = TranscriberSettings(
        min_audio_s=1.0,
        overlap_s=0.5,
        max_buffer_s=2.0,
        silence_threshold_s=1.5,
        **overrides,
    )
    backend = MagicMock()
    backend.is_loaded.return_value = True
    backend.transcribe.return_value = TranscriptionResult(text=text)

    scheduler = ManualScheduler()
    transcriber = IncrementalTranscriber(backend, scheduler, settings=settings, sample_rate=RATE)

    events = {"final": [], "partial": [], "wake": 0, "activity": [], "error": []}
    transcriber.on_final = events["final"].append
    transcriber.on_partial = events["partial"].append
    transcriber.on_voice_activity = events["activity"].append
    transcriber.on_error = events["error"].append

    def _wake():
        events["wake"] += 1

    transcriber.on_wake_word = _wake
    return transcriber, backend, scheduler, events


class TestAmplitude:
    def test_silence(self):
        info = AmplitudeInfo.measure(np.zeros(RATE, dtype=np.int16), RATE)
        assert info.db == -100.0
        assert info.peak == 0.0
        assert info.duration == 1.0

    def test_empty(self):
        info = AmplitudeInfo.measure(np.array([], dtype=np.int16), RATE)
        assert info.duration == 0.0

    def test_loud(self):
        info = AmplitudeInfo.measure(_loud(0.5), RATE)
        assert 0.2 < info.peak < 0.3
        assert info.db > -20


class TestBuffering:
    def test_accepts_bytes(self):
        transcriber, *_ = _make()
        transcriber.accept_frame(np.ones(160, dtype=np.int16).tobytes())
        assert transcriber.buffered_seconds == 0.01

    def test_buffer_is_capped(self):
        transcriber, *_ = _make()
        transcriber.accept_frame(_loud(3.0))
        assert transcriber.buffered_seconds == 2.0

    def test_clear_drops_audio_and_pending_text(self):
        transcriber, *_ = _make()
        transcriber.accept_frame(_loud(1.0))
        transcriber.handle_fragment("I am almost done")
        transcriber.clear()
        assert transcriber.buffered_seconds == 0.0
        assert transcriber.accumulator.pending == ""

    def test_start_and_stop_timers(self):
        transcriber, _, scheduler, _ = _make()
        transcriber.start()
        transcriber.start()
        assert transcriber.is_running
        assert scheduler.pending == 2

        transcriber.stop()
        assert not transcriber.is_running
        assert scheduler.pending == 0


class TestProcessBuffer:
    def test_short_buffer_is_not_transcribed(self):
        transcriber, backend, _, _ = _make("hello")
        transcriber.accept_frame(_loud(0.5))

        assert asyncio.run(transcriber.process_buffer()) is None
        backend.transcribe.assert_not_called()
        assert transcriber.buffered_seconds == 0.5

    def test_fragment_is_accumulated(self):
        transcriber, backend, _, events = _make("I'm working on the report")
        transcriber.accept_frame(_loud(1.5))

        fragment = asyncio.run(transcriber.process_buffer())

        assert fragment is not None
        assert fragment.text == "I'm working on the report"
        assert backend.transcribe.call_count == 1
        assert events["partial"] == ["I'm working on the report"]
        assert events["activity"] == [True]
        assert events["final"] == []
        # Overlap kept for the next window
        assert transcriber.buffered_seconds == 0.5

    def test_silent_window_is_skipped(self):
        transcriber, backend, _, _ = _make("ghost words")
        transcriber.accept_frame(np.zeros(RATE * 2, dtype=np.int16))

        assert asyncio.run(transcriber.process_buffer()) is None
        backend.transcribe.assert_not_called()

    def test_no_speech_sentinel_is_ignored(self):
        transcriber, _, _, events = _make("[BLANK_AUDIO]")
        transcriber.accept_frame(_loud(1.5))

        assert asyncio.run(transcriber.process_buffer()) is None
        assert events["partial"] == []

    def test_result_from_before_clear_is_discarded(self):
        transcriber, backend, _, events = _make()

        def _transcribe(*args, **kwargs):
            transcriber.clear()
            return TranscriptionResult(text="this was the coach talking")

        backend.transcribe.side_effect = _transcribe
        transcriber.accept_frame(_loud(1.5))

        assert asyncio.run(transcriber.process_buffer()) is None
        assert transcriber.accumulator.pending == ""
        assert events["partial"] == []

    def test_backend_error_is_reported(self):
        transcriber, backend, _, events = _make()
        backend.transcribe.side_effect = RuntimeError("model crashed")
        transcriber.accept_frame(_loud(1.5))

        assert asyncio.run(transcriber.process_buffer()) is None
        assert len(events["error"]) == 1
        assert not transcriber.is_processing


class TestFinalTranscripts:
    def test_silence_commits_utterance(self):
        transcriber, _, scheduler, events = _make()
        transcriber.handle_fragment("Done for today")

        scheduler.advance(1.0)
        transcriber.check()
        assert events["final"] == []

        scheduler.advance(0.5)
        transcriber.check()
        assert events["final"] == ["Done for today"]
        assert events["activity"] == [True, False]

    def test_wake_phrase_commits_immediately(self):
        transcriber, _, _, events = _make()
        transcriber.handle_fragment("Hey Goggins")

        assert events["wake"] == 1
        assert events["final"] == ["Hey Goggins"]

    def test_noise_fragment_is_not_voice_activity(self):
        transcriber, _, _, events = _make()
        assert not transcriber.handle_fragment("(music)")
        assert events["activity"] == []

    def test_failing_callback_does_not_propagate(self):
        transcriber, _, _, _ = _make()
        transcriber.on_partial = MagicMock(side_effect=ValueError("ui gone"))

        assert transcriber.handle_fragment("still working")

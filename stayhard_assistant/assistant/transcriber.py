"""
Incremental speech-to-text over a rolling microphone buffer.

Frames are buffered as they arrive. Every few seconds the buffered window
is transcribed off the event loop; the last second of audio is kept so
words cut at a window boundary are heard again in the next one. The
resulting overlapping fragments go through a ``TranscriptAccumulator``,
which decides when the user has finished an utterance.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from stayhard_assistant.assistant.accumulator import TranscriptAccumulator, is_noise_fragment
from stayhard_assistant.assistant.timing import Scheduler, TimerHandle, spawn
from stayhard_assistant.config import TranscriberSettings
from stayhard_assistant.stt.base import STTBackend

logger = logging.getLogger(__name__)


@dataclass
class AmplitudeInfo:
    """Loudness of one transcription window."""

    rms: float  # 0.0 - 1.0
    db: float  # dBFS, -100.0 for digital silence
    peak: float  # 0.0 - 1.0
    duration: float  # seconds

    @classmethod
    def measure(cls, audio: np.ndarray, sample_rate: int) -> "AmplitudeInfo":
        if len(audio) == 0:
            return cls(rms=0.0, db=-100.0, peak=0.0, duration=0.0)
        samples = audio.astype(np.float32) / 32768.0
        rms = float(np.sqrt(np.mean(samples**2)))
        peak = float(np.max(np.abs(samples)))
        db = 20 * math.log10(rms) if rms > 0 else -100.0
        return cls(rms=rms, db=db, peak=peak, duration=len(audio) / sample_rate)


@dataclass
class TranscriptFragment:
    """Raw text recognized in one window."""

    text: str
    amplitude: AmplitudeInfo
    timestamp: float


class IncrementalTranscriber:
    """
    Buffers audio frames and periodically transcribes them.

    Callbacks (all optional, all invoked on the event loop):
        on_final(text): an utterance is complete
        on_partial(text): pending text grew (UI feedback only)
        on_wake_word(): the wake phrase was heard
        on_voice_activity(active): True per accepted fragment, False after a flush
        on_error(exc): a transcription pass failed

    Usage:
        transcriber = IncrementalTranscriber(backend, scheduler)
        transcriber.start()
        transcriber.accept_frame(frame)  # from the microphone
    """

    def __init__(
        self,
        backend: STTBackend,
        scheduler: Scheduler,
        settings: Optional[TranscriberSettings] = None,
        sample_rate: int = 16000,
        wake_phrase: Optional[str] = "hey goggins",
        no_speech_sentinel: str = "[BLANK_AUDIO]",
    ):
        self.backend = backend
        self.scheduler = scheduler
        self.settings = settings or TranscriberSettings()
        self.sample_rate = sample_rate
        self.no_speech_sentinel = no_speech_sentinel

        self.on_final: Optional[Callable[[str], None]] = None
        self.on_partial: Optional[Callable[[str], None]] = None
        self.on_wake_word: Optional[Callable[[], None]] = None
        self.on_voice_activity: Optional[Callable[[bool], None]] = None
        self.on_error: Optional[Callable[[Exception], None]] = None

        self.accumulator = TranscriptAccumulator(
            silence_threshold_s=self.settings.silence_threshold_s,
            wake_phrase=wake_phrase,
            clock=scheduler,
            on_final=self._emit_final,
            on_wake_word=self._emit_wake_word,
        )

        self._buffer = np.array([], dtype=np.int16)
        self._max_samples = int(self.settings.max_buffer_s * sample_rate)
        self._min_samples = int(self.settings.min_audio_s * sample_rate)
        self._overlap_samples = int(self.settings.overlap_s * sample_rate)

        # Bumped by clear(); results of older passes are discarded
        self._epoch = 0
        self._processing = False
        self._timers: list[TimerHandle] = []

    @property
    def is_ready(self) -> bool:
        return self.backend.is_loaded()

    @property
    def is_running(self) -> bool:
        return bool(self._timers)

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def buffered_seconds(self) -> float:
        return len(self._buffer) / self.sample_rate

    def start(self) -> None:
        """Start the periodic transcription and silence-check timers."""
        if self._timers:
            return
        self._timers = [
            self.scheduler.call_every(self.settings.process_interval_s, self._on_process_tick),
            self.scheduler.call_every(self.settings.check_interval_s, self.check),
        ]
        logger.info(
            "Transcriber started (every %.1fs, silence %.1fs)",
            self.settings.process_interval_s,
            self.settings.silence_threshold_s,
        )

    def stop(self) -> None:
        """Stop the timers and drop everything buffered."""
        for timer in self._timers:
            timer.cancel()
        self._timers = []
        self.clear()
        logger.info("Transcriber stopped")

    def accept_frame(self, frame) -> None:
        """Append one int16 PCM frame (ndarray or raw bytes) to the buffer."""
        if isinstance(frame, (bytes, bytearray, memoryview)):
            frame = np.frombuffer(frame, dtype=np.int16)
        self._buffer = np.concatenate([self._buffer, frame.astype(np.int16, copy=False)])
        if len(self._buffer) > self._max_samples:
            self._buffer = self._buffer[-self._max_samples:]

    def clear(self) -> None:
        """Discard buffered audio and pending text; invalidate in-flight passes."""
        self._epoch += 1
        self._buffer = np.array([], dtype=np.int16)
        self.accumulator.clear()

    def check(self) -> None:
        """Silence check, run every ``check_interval_s``."""
        if self.accumulator.check() is not None:
            self._notify(self.on_voice_activity, False)

    def _on_process_tick(self) -> None:
        if self._processing:
            logger.debug("Previous transcription still running, skipping tick")
            return
        spawn(self.process_buffer())

    async def process_buffer(self) -> Optional[TranscriptFragment]:
        """
        Run one transcription pass over the buffered window.

        Returns:
            The recognized fragment, or None if the pass was skipped,
            failed, produced nothing, or was invalidated by ``clear()``
        """
        if self._processing or len(self._buffer) < self._min_samples:
            return None

        window = self._buffer
        self._buffer = (
            window[-self._overlap_samples:].copy()
            if self._overlap_samples
            else np.array([], dtype=np.int16)
        )

        amplitude = AmplitudeInfo.measure(window, self.sample_rate)
        if amplitude.peak < self.settings.silence_peak:
            logger.debug("Silent window (peak %.4f), skipping", amplitude.peak)
            return None

        epoch = self._epoch
        self._processing = True
        try:
            result = await asyncio.to_thread(
                self.backend.transcribe,
                window,
                self.sample_rate,
                language=self.settings.language,
            )
        except Exception as e:
            logger.error("Transcription failed: %s", e)
            self._notify(self.on_error, e)
            return None
        finally:
            self._processing = False

        if epoch != self._epoch:
            logger.debug("Discarding transcription from before clear(): %r", result.text)
            return None

        text = result.text.strip()
        logger.debug(
            "Window %.1fs, %.1f dBFS -> %r", amplitude.duration, amplitude.db, text
        )
        if not text or text == self.no_speech_sentinel:
            return None

        fragment = TranscriptFragment(text=text, amplitude=amplitude, timestamp=self.scheduler.now())
        self.handle_fragment(text)
        return fragment

    def handle_fragment(self, text: str) -> bool:
        """Feed one recognized fragment to the accumulator."""
        if is_noise_fragment(text):
            logger.debug("Dropped noise fragment: %r", text)
            return False

        self._notify(self.on_voice_activity, True)
        self.accumulator.add(text)
        if self.accumulator.pending:
            self._notify(self.on_partial, self.accumulator.pending)
        return True

    def _emit_final(self, text: str) -> None:
        self._notify(self.on_final, text)

    def _emit_wake_word(self) -> None:
        self._notify(self.on_wake_word)

    def _notify(self, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Transcriber callback failed")

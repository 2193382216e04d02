"""
Audio I/O handling for the coach.

Provides:
- Continuous microphone input delivered onto the event loop
- WAV playback with start/end notifications (drives the echo gate)
- Voice Activity Detection (VAD) for barge-in
"""

import asyncio
import logging
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import numpy as np

logger = logging.getLogger(__name__)

PLAYBACK_TIMEOUT_S = 60.0  # Longest clip aplay may play before it is killed


def _find_usb_audio_device(kind: str = "input") -> Optional[int]:
    """Auto-detect a USB audio device, preferring devices with both input and output.

    Returns:
        Device index, or None if no USB device found.
    """
    try:
        import sounddevice as sd
    except ImportError:
        return None

    # Virtual/internal devices to skip
    _SKIP = {"HDMI", "HDA", "APE", "DisplayPort"}

    best = None
    best_score = -1

    for i, dev in enumerate(sd.query_devices()):
        name = dev["name"]
        has_in = dev["max_input_channels"] > 0
        has_out = dev["max_output_channels"] > 0

        if any(skip in name for skip in _SKIP):
            continue
        if kind == "input" and not has_in:
            continue
        if kind == "output" and not has_out:
            continue

        # Speakerphones first, then anything USB
        score = 0
        if has_in and has_out:
            score += 2
        if "USB" in name:
            score += 1

        if score > best_score:
            best = i
            best_score = score

    return best


@dataclass
class AudioConfig:
    """Audio configuration."""

    sample_rate: int = 16000
    channels: int = 1
    chunk_duration_ms: int = 100  # 100ms chunks
    dtype: np.dtype = np.int16

    @property
    def chunk_size(self) -> int:
        """Samples per chunk."""
        return int(self.sample_rate * self.chunk_duration_ms / 1000)


class VoiceActivityDetector:
    """
    Detect voice activity in audio stream.

    Uses simple energy-based detection, or WebRTC VAD when requested and
    installed. ``feed()`` counts consecutive speech frames so a single
    click or cough does not count as the user talking.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        energy_threshold: float = 500.0,
        min_speech_frames: int = 3,
        use_webrtc: bool = False,
        mode: int = 3,
    ):
        """
        Initialize VAD.

        Args:
            sample_rate: Audio sample rate (8000, 16000, 32000, or 48000)
            energy_threshold: RMS (int16 scale) above which a frame is speech
            min_speech_frames: Consecutive speech frames reported by feed()
            use_webrtc: Use WebRTC VAD (requires webrtcvad)
            mode: WebRTC aggressiveness (0-3, 3 is most aggressive)
        """
        self.sample_rate = sample_rate
        self.energy_threshold = energy_threshold
        self.min_speech_frames = min_speech_frames
        self._webrtc_vad = None
        self._speech_frames = 0

        if use_webrtc:
            try:
                import webrtcvad
            except ImportError as e:
                raise ImportError(
                    "webrtcvad not installed. "
                    "Install with: pip install stayhard-assistant[audio]"
                ) from e
            self._webrtc_vad = webrtcvad.Vad(mode)
            logger.info("Using WebRTC VAD")
        else:
            logger.debug("Using energy-based VAD")

    def is_speech(self, audio: np.ndarray) -> bool:
        """Check if an int16 audio chunk contains speech."""
        if self._webrtc_vad:
            return self._webrtc_is_speech(audio)
        return self._energy_is_speech(audio)

    def _webrtc_is_speech(self, audio: np.ndarray) -> bool:
        # WebRTC VAD accepts 10, 20 or 30ms frames
        frame_size = int(self.sample_rate * 0.03)

        if len(audio) < frame_size:
            return False

        speech_count = 0
        total_frames = 0
        for i in range(0, len(audio) - frame_size + 1, frame_size):
            frame = audio[i : i + frame_size].astype(np.int16)
            if self._webrtc_vad.is_speech(frame.tobytes(), self.sample_rate):
                speech_count += 1
            total_frames += 1

        return speech_count > total_frames / 2

    def _energy_is_speech(self, audio: np.ndarray) -> bool:
        if len(audio) == 0:
            return False
        rms = np.sqrt(np.mean(audio.astype(np.float64) ** 2))
        return rms > self.energy_threshold

    def feed(self, audio: np.ndarray) -> bool:
        """
        Track consecutive speech frames.

        Returns:
            True once ``min_speech_frames`` speech frames arrived in a row
            (the counter then restarts)
        """
        if self.is_speech(audio):
            self._speech_frames += 1
        else:
            self._speech_frames = 0

        if self._speech_frames >= self.min_speech_frames:
            self._speech_frames = 0
            return True
        return False

    def reset(self) -> None:
        """Reset VAD state."""
        self._speech_frames = 0


class AudioSource:
    """
    Continuous microphone input.

    sounddevice calls back on its own thread; every frame is handed to
    the event loop with ``call_soon_threadsafe`` so consumers only ever
    run on the loop.
    """

    def __init__(
        self,
        config: Optional[AudioConfig] = None,
        device: Optional[int] = None,
    ):
        try:
            import sounddevice as sd
        except ImportError as e:
            raise ImportError(
                "sounddevice not installed. "
                "Install with: pip install stayhard-assistant[audio]"
            ) from e

        self.config = config or AudioConfig()
        self._sd = sd
        self._stream = None
        self._on_frame: Optional[Callable[[np.ndarray], None]] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running = False

        if device is None:
            device = _find_usb_audio_device(kind="input")
            if device is not None:
                logger.info("Auto-detected USB input device: [%d] %s",
                            device, sd.query_devices(device)["name"])
        self.device = device

        if self.device is None:
            device_info = sd.query_devices(kind="input")
        else:
            device_info = sd.query_devices(self.device)
        logger.info("Audio input: %s", device_info["name"])

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self, on_frame: Callable[[np.ndarray], None]) -> None:
        """
        Start capture. Must be called from the event loop thread.

        Args:
            on_frame: Called on the loop with each int16 mono frame
        """
        if self._running:
            return

        self._on_frame = on_frame
        self._loop = asyncio.get_running_loop()
        self._running = True

        self._stream = self._sd.InputStream(
            samplerate=self.config.sample_rate,
            channels=self.config.channels,
            dtype=self.config.dtype,
            blocksize=self.config.chunk_size,
            device=self.device,
            callback=self._audio_callback,
        )
        self._stream.start()
        logger.info("Microphone capture started")

    def _audio_callback(self, indata, frames, time_info, status):
        """Internal callback from sounddevice (audio thread)."""
        if status:
            logger.warning("Audio input status: %s", status)

        if not self._running or self._loop is None:
            return

        audio = indata[:, 0] if indata.ndim > 1 else indata
        try:
            self._loop.call_soon_threadsafe(self._deliver, audio.copy())
        except RuntimeError:
            # Loop already closed during shutdown
            self._running = False

    def _deliver(self, audio: np.ndarray) -> None:
        if self._running and self._on_frame is not None:
            self._on_frame(audio)

    def stop(self) -> None:
        """Stop audio capture."""
        self._running = False
        if self._stream:
            self._stream.stop()
            self._stream.close()
            self._stream = None
            logger.info("Microphone capture stopped")

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.stop()


class AudioOutput:
    """
    WAV file playback.

    Uses aplay (ALSA) when available, otherwise sounddevice. Playback
    start/end are reported through ``on_start``/``on_end`` so the
    orchestrator can gate the microphone while the coach is talking.
    ``stop()`` cuts the current clip short (barge-in).
    """

    def __init__(
        self,
        device: Optional[int] = None,
        use_aplay: bool = True,
        on_start: Optional[Callable[[], None]] = None,
        on_end: Optional[Callable[[], None]] = None,
    ):
        self.on_start = on_start
        self.on_end = on_end
        self._use_aplay = use_aplay and shutil.which("aplay") is not None
        self._process: Optional[asyncio.subprocess.Process] = None
        self._playing = False
        self._sd = None

        if device is None:
            device = _find_usb_audio_device(kind="output")
        self.device = device

        if self._use_aplay:
            logger.info("Audio output: aplay (ALSA)")
        else:
            if use_aplay:
                logger.warning("aplay not found, falling back to sounddevice")
            try:
                import sounddevice as sd
            except ImportError as e:
                raise ImportError(
                    "sounddevice not installed. "
                    "Install with: pip install stayhard-assistant[audio]"
                ) from e
            self._sd = sd
            logger.info("Audio output: sounddevice")

    def is_playing(self) -> bool:
        return self._playing

    async def play_file(self, path: Path) -> None:
        """Play a WAV file to completion (or until ``stop()``)."""
        self._playing = True
        self._notify(self.on_start)
        try:
            if self._use_aplay:
                await self._play_with_aplay(path)
            else:
                await asyncio.to_thread(self._play_with_sounddevice, path)
        finally:
            self._playing = False
            self._process = None
            self._notify(self.on_end)

    def _aplay_device_args(self) -> list[str]:
        if self.device is None:
            return []
        try:
            import sounddevice as sd

            # "Jabra SPEAK 410 USB: Audio (hw:4,0)" -> plughw:4,0
            m = re.search(r"\(hw:(\d+,\d+)\)", sd.query_devices(self.device)["name"])
        except Exception:
            return []
        return ["-D", f"plughw:{m.group(1)}"] if m else []

    async def _play_with_aplay(self, path: Path) -> None:
        cmd = ["aplay", "-q", *self._aplay_device_args(), str(path)]
        self._process = await asyncio.create_subprocess_exec(*cmd)
        try:
            await asyncio.wait_for(self._process.wait(), timeout=PLAYBACK_TIMEOUT_S)
        except asyncio.TimeoutError:
            logger.warning("Audio playback timeout")
            self._process.kill()
            await self._process.wait()

    def _play_with_sounddevice(self, path: Path) -> None:
        from scipy.io import wavfile

        sample_rate, audio = wavfile.read(str(path))
        if audio.dtype == np.int16:
            audio = audio.astype(np.float32) / 32768.0
        self._sd.play(audio, sample_rate, device=self.device)
        self._sd.wait()

    def stop(self) -> None:
        """Stop the clip currently playing, if any."""
        if self._process is not None and self._process.returncode is None:
            self._process.terminate()
        if self._sd is not None and self._playing:
            self._sd.stop()

    def _notify(self, callback: Optional[Callable[[], None]]) -> None:
        if callback is None:
            return
        try:
            callback()
        except Exception:
            logger.exception("Playback notification failed")

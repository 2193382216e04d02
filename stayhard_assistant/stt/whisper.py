"""
Whisper STT backend implementation.

Uses faster-whisper for optimized inference. Tuned for the short,
overlapping windows the incremental transcriber feeds it: no word
timestamps, greedy decoding by default and silent segments dropped.
"""

import logging
from typing import Any

import numpy as np

from stayhard_assistant.stt.base import STTBackend, TranscriptionResult, TranscriptionSegment
from stayhard_assistant.stt.registry import register_stt_backend

logger = logging.getLogger(__name__)

# Segments Whisper itself considers non-speech
NO_SPEECH_THRESHOLD = 0.6


@register_stt_backend("whisper")
class WhisperBackend(STTBackend):
    """Whisper STT backend using faster-whisper."""

    name = "whisper"

    def __init__(self):
        super().__init__()
        self._model_size = "base.en"
        self._device = "auto"
        self._compute_type = "auto"

    def load(
        self,
        model_size: str = "base.en",
        device: str = "auto",
        compute_type: str = "auto",
        **kwargs,
    ) -> None:
        """
        Load Whisper model.

        Args:
            model_size: Model size (tiny.en, base.en, small, medium, large-v3)
            device: Device to use ("cuda", "cpu", or "auto")
            compute_type: Compute type ("float16", "int8", or "auto")
        """
        try:
            from faster_whisper import WhisperModel
        except ImportError as e:
            raise ImportError(
                "faster-whisper not installed. "
                "Install with: pip install stayhard-assistant[whisper]"
            ) from e

        self._model_size = model_size
        logger.info("Loading Whisper (%s)...", model_size)

        if device == "auto":
            device = "cpu"
            try:
                import ctranslate2

                if ctranslate2.get_cuda_device_count() > 0:
                    device = "cuda"
            except Exception:
                pass

        if compute_type == "auto":
            compute_type = "float16" if device == "cuda" else "int8"

        try:
            self._model = WhisperModel(model_size, device=device, compute_type=compute_type)
        except ValueError as e:
            if "CUDA" in str(e) and device == "cuda":
                logger.warning("CUDA not available in ctranslate2, falling back to CPU")
                device = "cpu"
                compute_type = "int8"
                self._model = WhisperModel(model_size, device=device, compute_type=compute_type)
            else:
                raise

        self._device = device
        self._compute_type = compute_type
        self._loaded = True
        logger.info("Whisper model loaded on %s", device)

    def transcribe(
        self,
        audio: np.ndarray,
        sample_rate: int,
        language: str | None = None,
        beam_size: int = 1,
        **kwargs,
    ) -> TranscriptionResult:
        """
        Transcribe audio to text.

        Args:
            audio: Audio data (int16 PCM)
            sample_rate: Sample rate in Hz
            language: Language code (auto-detect if None)
            beam_size: Beam size for decoding
        """
        if not self._loaded:
            raise RuntimeError("Model not loaded. Call load() first.")

        # Convert int16 to float32 in range [-1, 1]
        if audio.dtype == np.int16:
            audio_float = audio.astype(np.float32) / 32768.0
        else:
            audio_float = audio.astype(np.float32)

        # Whisper expects 16kHz
        if sample_rate != 16000:
            from scipy import signal

            num_samples = int(len(audio_float) * 16000 / sample_rate)
            audio_float = signal.resample(audio_float, num_samples)

        segments_gen, info = self._model.transcribe(
            audio_float,
            language=language,
            beam_size=beam_size,
            no_speech_threshold=NO_SPEECH_THRESHOLD,
            condition_on_previous_text=False,
        )

        segments = []
        for segment in segments_gen:
            if getattr(segment, "no_speech_prob", 0.0) > NO_SPEECH_THRESHOLD:
                continue

            # avg_logprob is negative; -1.0 -> 0.0, 0.0 -> 1.0
            avg_logprob = getattr(segment, "avg_logprob", 0.0)
            confidence = max(0.0, min(1.0, 1.0 + avg_logprob))

            text = segment.text.strip()
            if text:
                segments.append(
                    TranscriptionSegment(
                        text=text,
                        start=segment.start,
                        end=segment.end,
                        confidence=confidence,
                    )
                )

        return TranscriptionResult(
            text=" ".join(s.text for s in segments),
            segments=segments,
            language=getattr(info, "language", None) or language or "en",
            duration=len(audio) / sample_rate,
            metadata={
                "model_size": self._model_size,
                "language_probability": getattr(info, "language_probability", None),
            },
        )

    def unload(self) -> None:
        """Unload model and free memory."""
        self._model = None
        self._loaded = False

    def get_info(self) -> dict[str, Any]:
        """Get backend information."""
        info = super().get_info()
        info.update({
            "device": self._device,
            "compute_type": self._compute_type,
        })
        return info

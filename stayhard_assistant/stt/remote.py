"""
Remote Whisper STT backend.

Posts each window to an OpenAI-compatible ``/audio/transcriptions``
endpoint (whisper.cpp server, vLLM, speaches, ...).
"""

import io
import logging
from typing import Any

import numpy as np

from stayhard_assistant.stt.base import STTBackend, TranscriptionResult, TranscriptionSegment
from stayhard_assistant.stt.registry import register_stt_backend

logger = logging.getLogger(__name__)


@register_stt_backend("remote")
class RemoteWhisperBackend(STTBackend):
    """Whisper served over HTTP."""

    name = "remote"

    def __init__(self):
        super().__init__()
        self._host = "http://localhost:8080/v1"
        self._model_name = "whisper-1"
        self._client = None

    def load(
        self,
        model_size: str = "whisper-1",
        host: str = "http://localhost:8080/v1",
        timeout: float = 30.0,
        **kwargs,
    ) -> None:
        """
        Connect to the transcription server.

        Args:
            model_size: Model name sent with each request
            host: Server base URL
            timeout: Per-request timeout in seconds
        """
        import httpx

        self._host = host.rstrip("/")
        self._model_size = model_size
        self._model_name = model_size
        self._client = httpx.Client(timeout=timeout)
        self._loaded = True
        logger.info("Remote Whisper: %s (model=%s)", self._host, self._model_name)

    def transcribe(
        self,
        audio: np.ndarray,
        sample_rate: int,
        language: str | None = None,
        **kwargs,
    ) -> TranscriptionResult:
        if not self._loaded or self._client is None:
            raise RuntimeError("Backend not loaded. Call load() first.")

        import scipy.io.wavfile

        buf = io.BytesIO()
        scipy.io.wavfile.write(buf, sample_rate, audio)

        files = {"file": ("audio.wav", buf.getvalue(), "audio/wav")}
        data = {"model": self._model_name}
        if language:
            data["language"] = language

        resp = self._client.post(f"{self._host}/audio/transcriptions", files=files, data=data)
        resp.raise_for_status()

        text = resp.json().get("text", "").strip()
        duration = len(audio) / sample_rate
        segments = [TranscriptionSegment(text=text, start=0.0, end=duration)] if text else []

        return TranscriptionResult(
            text=text,
            segments=segments,
            language=language or "en",
            duration=duration,
            metadata={"model": self._model_name, "backend": "remote"},
        )

    def unload(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
        self._loaded = False

    def get_info(self) -> dict[str, Any]:
        info = super().get_info()
        info.update({"host": self._host, "model_name": self._model_name})
        return info

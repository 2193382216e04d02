"""
Abstract base class for STT backends.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import numpy as np


@dataclass
class TranscriptionSegment:
    """A segment of transcribed audio."""

    text: str
    start: float  # Start time in seconds
    end: float  # End time in seconds
    confidence: float = 1.0  # Confidence score (0.0 - 1.0)


@dataclass
class TranscriptionResult:
    """Result from speech transcription."""

    text: str  # Full transcription, may be empty
    segments: list[TranscriptionSegment] = field(default_factory=list)
    language: str = "en"
    duration: float = 0.0  # Audio duration in seconds
    metadata: dict[str, Any] = field(default_factory=dict)


class STTBackend(ABC):
    """Abstract base class for STT backends.

    Backends are blocking; the transcriber runs them off the event loop.
    """

    name: str = "base"

    def __init__(self):
        """Initialize the backend."""
        self._loaded = False
        self._model = None
        self._model_size = "base"

    @abstractmethod
    def load(self, model_size: str = "base", **kwargs) -> None:
        """
        Load the model into memory (or connect to the server).

        Args:
            model_size: Model size (e.g., "tiny.en", "base.en", "small")
            **kwargs: Backend-specific options
        """
        pass

    @abstractmethod
    def transcribe(
        self,
        audio: np.ndarray,
        sample_rate: int,
        language: str | None = None,
        **kwargs,
    ) -> TranscriptionResult:
        """
        Transcribe audio to text.

        Args:
            audio: Audio data (int16 PCM, mono)
            sample_rate: Sample rate in Hz
            language: Language code (auto-detect if None)

        Returns:
            TranscriptionResult with text and segments
        """
        pass

    def is_loaded(self) -> bool:
        """Check if model is loaded."""
        return self._loaded

    def unload(self) -> None:
        """Unload model from memory."""
        self._model = None
        self._loaded = False

    def get_info(self) -> dict[str, Any]:
        """Get backend information."""
        return {
            "name": self.name,
            "loaded": self._loaded,
            "model_size": self._model_size,
        }

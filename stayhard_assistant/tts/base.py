"""
Abstract base class for TTS backends.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import numpy as np


@dataclass
class Voice:
    """Voice information."""

    id: str
    name: str
    language: str
    gender: str = ""
    description: str = ""
    sample_rate: int = 22050

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "language": self.language,
            "gender": self.gender,
            "description": self.description,
            "sample_rate": self.sample_rate,
        }


@dataclass
class SynthesisResult:
    """Result from speech synthesis."""

    audio: np.ndarray  # int16 PCM audio data
    sample_rate: int
    duration: float = 0.0
    voice: str = ""
    text: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Calculate duration if not set."""
        if self.duration == 0.0 and len(self.audio) > 0:
            self.duration = len(self.audio) / self.sample_rate

    def save(self, path: str) -> None:
        """Save audio to WAV file."""
        from scipy.io import wavfile

        wavfile.write(path, self.sample_rate, self.audio)


class TTSBackend(ABC):
    """Abstract base class for TTS backends."""

    name: str = "base"

    def __init__(self):
        """Initialize the backend."""
        self._loaded = False
        self._model = None

    @abstractmethod
    def load(self, **kwargs) -> None:
        """
        Load the model into memory.

        Args:
            **kwargs: Backend-specific options (voice, model_path, etc.)
        """
        pass

    @abstractmethod
    def synthesize(self, text: str, **kwargs) -> SynthesisResult:
        """
        Generate speech from text.

        Args:
            text: Text to synthesize
            **kwargs: Backend-specific options

        Returns:
            SynthesisResult with audio data
        """
        pass

    @abstractmethod
    def get_voices(self) -> list[Voice]:
        """Get available voices."""
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
            "voices": len(self.get_voices()),
        }

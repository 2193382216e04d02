"""
Piper TTS backend implementation.

Piper is a fast, local TTS system that runs well on CPU.
"""

import logging
from pathlib import Path

import numpy as np

from stayhard_assistant.config import get_default_cache_dir
from stayhard_assistant.tts.base import SynthesisResult, TTSBackend, Voice
from stayhard_assistant.tts.registry import register_tts_backend

logger = logging.getLogger(__name__)

_HF_BASE = "https://huggingface.co/rhasspy/piper-voices/resolve/main"

# Deep male voices suit the coach; lessac is the default
PIPER_VOICES = {
    "en_US-lessac-medium": {
        "name": "Lessac",
        "language": "en-US",
        "gender": "male",
        "description": "US English medium quality",
        "url": f"{_HF_BASE}/en/en_US/lessac/medium/en_US-lessac-medium.onnx",
    },
    "en_US-ryan-high": {
        "name": "Ryan",
        "language": "en-US",
        "gender": "male",
        "description": "US English high quality",
        "url": f"{_HF_BASE}/en/en_US/ryan/high/en_US-ryan-high.onnx",
    },
    "en_US-joe-medium": {
        "name": "Joe",
        "language": "en-US",
        "gender": "male",
        "description": "US English medium quality",
        "url": f"{_HF_BASE}/en/en_US/joe/medium/en_US-joe-medium.onnx",
    },
}


@register_tts_backend("piper")
class PiperBackend(TTSBackend):
    """Piper TTS backend for fast, lightweight synthesis."""

    name = "piper"

    def __init__(self):
        super().__init__()
        self._sample_rate = 22050
        self._voice_path: Path | None = None
        self._config_path: Path | None = None
        self._current_voice = "en_US-lessac-medium"

    def load(
        self,
        voice: str = "en_US-lessac-medium",
        model_path: str | None = None,
        **kwargs,
    ) -> None:
        """
        Load Piper TTS model.

        Args:
            voice: Voice model name
            model_path: Direct path to ONNX model file (overrides voice)
        """
        try:
            from piper import PiperVoice
        except ImportError as e:
            raise ImportError(
                "Piper TTS not installed. "
                "Install with: pip install stayhard-assistant[piper]"
            ) from e

        if model_path:
            self._voice_path = Path(model_path).expanduser()
            self._config_path = Path(str(self._voice_path) + ".json")
        elif voice in PIPER_VOICES:
            self._voice_path, self._config_path = self._download_voice(voice)
            self._current_voice = voice
        else:
            raise ValueError(f"Unknown voice: {voice}")

        logger.info("Loading Piper voice: %s...", self._voice_path.name)

        self._model = PiperVoice.load(
            str(self._voice_path),
            config_path=str(self._config_path) if self._config_path.exists() else None,
        )

        if hasattr(self._model, "config") and hasattr(self._model.config, "sample_rate"):
            self._sample_rate = self._model.config.sample_rate

        self._loaded = True
        logger.info("Piper model loaded")

    def _download_voice(self, voice: str) -> tuple[Path, Path]:
        """Download voice model and config if not cached."""
        import urllib.request

        url = PIPER_VOICES[voice]["url"]
        cache_dir = get_default_cache_dir() / "piper"
        cache_dir.mkdir(parents=True, exist_ok=True)

        model_path = cache_dir / f"{voice}.onnx"
        config_path = cache_dir / f"{voice}.onnx.json"

        if not model_path.exists():
            logger.info("Downloading %s model...", voice)
            urllib.request.urlretrieve(url, model_path)

        if not config_path.exists():
            logger.info("Downloading %s config...", voice)
            urllib.request.urlretrieve(url + ".json", config_path)

        return model_path, config_path

    def synthesize(self, text: str, length_scale: float = 1.0, **kwargs) -> SynthesisResult:
        """
        Generate speech from text.

        Args:
            text: Text to synthesize
            length_scale: Speaking rate (higher = slower)
        """
        if not self._loaded:
            raise RuntimeError("Model not loaded. Call load() first.")

        syn_config = None
        try:
            from piper.config import SynthesisConfig

            syn_config = SynthesisConfig(length_scale=length_scale)
        except (ImportError, TypeError):
            pass  # Older piper releases take no config

        chunks = [chunk.audio_int16_array for chunk in self._model.synthesize(text, syn_config)]
        audio = np.concatenate(chunks) if chunks else np.array([], dtype=np.int16)

        return SynthesisResult(
            audio=audio,
            sample_rate=self._sample_rate,
            voice=self._current_voice,
            text=text,
            metadata={"backend": "piper", "length_scale": length_scale},
        )

    def get_voices(self) -> list[Voice]:
        """Get the bundled voice catalogue."""
        return [
            Voice(
                id=voice_id,
                name=info["name"],
                language=info["language"],
                gender=info["gender"],
                description=info["description"],
                sample_rate=self._sample_rate,
            )
            for voice_id, info in PIPER_VOICES.items()
        ]

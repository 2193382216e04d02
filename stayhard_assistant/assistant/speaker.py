"""
Speaker: text in, WAV file out.

Synthesis runs in a worker thread. Any failure (no TTS installed, model
missing, synthesis error) yields ``None`` and the reply is delivered as
text only.
"""

import asyncio
import itertools
import logging
from collections import deque
from pathlib import Path
from typing import Optional

from stayhard_assistant.assistant.tts_cache import TTSCache
from stayhard_assistant.config import TTSSettings
from stayhard_assistant.tts.base import TTSBackend

logger = logging.getLogger(__name__)

# Uncached clips kept on disk; older ones are deleted
_SCRATCH_CLIPS = 4


class Speaker:
    """
    Synthesizes replies into WAV files under ``output_dir``.

    Args:
        backend: Loaded TTS backend, or None for text-only mode
        output_dir: Where clips are written
        voice: Voice id, part of the cache key
        cache: Clip cache for short repeated lines
    """

    def __init__(
        self,
        backend: Optional[TTSBackend],
        output_dir: Path,
        voice: str = "",
        cache: Optional[TTSCache] = None,
    ):
        self.backend = backend
        self.output_dir = Path(output_dir)
        self.voice = voice
        self.cache = cache or TTSCache()
        self._counter = itertools.count(1)
        self._scratch: deque[Path] = deque()

    @classmethod
    def from_settings(cls, settings: TTSSettings) -> "Speaker":
        """Build a speaker, falling back to text-only if TTS cannot load."""
        backend = None
        if settings.enabled:
            from stayhard_assistant.tts import get_tts_backend

            try:
                backend = get_tts_backend(settings.backend)
                backend.load(voice=settings.voice, model_path=settings.model_path)
            except Exception as e:
                logger.warning("TTS unavailable (%s), replies will be text only", e)
                backend = None
        return cls(
            backend=backend,
            output_dir=settings.output_dir,
            voice=settings.voice,
            cache=TTSCache(max_entries=settings.cache_entries),
        )

    @property
    def available(self) -> bool:
        return self.backend is not None and self.backend.is_loaded()

    async def synthesize(self, text: str) -> Optional[Path]:
        """Return a WAV file speaking ``text``, or None if no audio is available."""
        if not self.available or not text.strip():
            return None

        cached = self.cache.get(text, self.voice)
        if cached is not None:
            logger.debug("Cached clip for %r", text)
            return cached.path

        try:
            result = await asyncio.to_thread(self.backend.synthesize, text)
            if len(result.audio) == 0:
                logger.warning("TTS returned no audio for %r", text)
                return None

            self.output_dir.mkdir(parents=True, exist_ok=True)
            path = self.output_dir / f"reply_{next(self._counter):05d}.wav"
            await asyncio.to_thread(result.save, str(path))
        except Exception:
            logger.exception("Speech synthesis failed")
            return None

        if not self.cache.put(text, self.voice, path, result.duration):
            self._track_scratch(path)
        logger.debug("Synthesized %.1fs clip: %s", result.duration, path.name)
        return path

    def _track_scratch(self, path: Path) -> None:
        self._scratch.append(path)
        while len(self._scratch) > _SCRATCH_CLIPS:
            self._scratch.popleft().unlink(missing_ok=True)

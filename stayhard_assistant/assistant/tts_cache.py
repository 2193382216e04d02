"""LRU cache for synthesized clips, so stock lines are not re-synthesized."""

import hashlib
import logging
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class CachedClip:
    path: Path
    duration: float


class TTSCache:
    """LRU cache of WAV files on disk; evicted clips are deleted."""

    def __init__(self, max_entries: int = 32, max_text_len: int = 80):
        self._max_entries = max_entries
        self._max_text_len = max_text_len
        self._cache: OrderedDict[str, CachedClip] = OrderedDict()

    @staticmethod
    def _key(text: str, voice: str) -> str:
        raw = f"{text.strip().lower()}|{voice}"
        return hashlib.md5(raw.encode()).hexdigest()

    def cacheable(self, text: str) -> bool:
        return len(text) <= self._max_text_len

    def get(self, text: str, voice: str) -> Optional[CachedClip]:
        if not self.cacheable(text):
            return None
        key = self._key(text, voice)
        clip = self._cache.get(key)
        if clip is None:
            return None
        if not clip.path.exists():
            del self._cache[key]
            return None
        self._cache.move_to_end(key)
        return clip

    def put(self, text: str, voice: str, path: Path, duration: float) -> bool:
        """Remember a clip. Returns False if the text is too long to cache."""
        if not self.cacheable(text):
            return False
        key = self._key(text, voice)
        self._cache[key] = CachedClip(path=path, duration=duration)
        self._cache.move_to_end(key)
        while len(self._cache) > self._max_entries:
            _, evicted = self._cache.popitem(last=False)
            evicted.path.unlink(missing_ok=True)
            logger.debug("Evicted cached clip %s", evicted.path.name)
        return True

    def __len__(self) -> int:
        return len(self._cache)

"""
Transcript accumulation and silence-commit.

The transcriber never says "the user stopped talking". Instead, successive
overlapping fragments are merged into one pending utterance and a periodic
check commits it once no new fragment has arrived for the silence threshold.
A wake phrase inside the pending text commits immediately.
"""

import logging
import re
from typing import Callable, Optional

from stayhard_assistant.assistant.timing import Clock, MonotonicClock

logger = logging.getLogger(__name__)

# Whisper hallucinations produced on silence / background video audio
_FALSE_POSITIVES = (
    "thank you for watching",
    "thanks for watching",
    "like and subscribe",
    "subscribe",
)

_PLACEHOLDER = re.compile(r"^(\*.*\*|\[.*\]|\(.*\))$", re.DOTALL)
_SYMBOLS_ONLY = re.compile(r"^[^a-zA-Z]{1,2}$")
_WORD = re.compile(r"[a-z0-9']+")


def _words(text: str) -> list[str]:
    return _WORD.findall(text.lower())


def is_noise_fragment(text: str) -> bool:
    """True if a recognized fragment is transcription noise, not speech."""
    cleaned = text.strip()
    if len(cleaned) < 2:
        return True
    if _SYMBOLS_ONLY.match(cleaned):
        return True
    if _PLACEHOLDER.match(cleaned) or "inaudible" in cleaned.lower():
        return True

    lowered = cleaned.lower()
    if len(cleaned) < 20 and any(fp in lowered for fp in _FALSE_POSITIVES):
        return True

    # One short phrase said back to back, e.g. "you you you you"
    words = _words(cleaned)
    if len(words) >= 4:
        half = len(words) // 2
        if words[:half] == words[half:2 * half] and len(set(words)) <= 2:
            return True

    return not words


def _extends(pending_words: list[str], fragment_words: list[str]) -> bool:
    """True if the fragment starts with the pending words (last one may be cut short)."""
    if not pending_words or len(fragment_words) < len(pending_words):
        return False
    last = len(pending_words) - 1
    if fragment_words[:last] != pending_words[:last]:
        return False
    return fragment_words[last].startswith(pending_words[last])


def merge_fragment(pending: str, fragment: str) -> str:
    """Merge an overlapping transcription fragment into the pending text.

    Consecutive STT windows share ~1s of audio, so the same words are often
    recognized twice. Growing hypotheses replace the pending text, repeats
    are dropped, and partial overlaps are joined once.
    """
    fragment = fragment.strip()
    if not pending:
        return fragment

    pending_words = _words(pending)
    fragment_words = _words(fragment)
    if not fragment_words:
        return pending

    # "Hey Gog" -> "Hey Goggins": the new window re-heard and extended the old one
    if _extends(pending_words, fragment_words):
        return fragment

    # Fragment already at the tail of what we have
    n = len(fragment_words)
    if n <= len(pending_words) and pending_words[-n:] == fragment_words:
        return pending

    # Longest suffix of pending that is a prefix of the fragment
    max_overlap = min(len(pending_words), n)
    for size in range(max_overlap, 0, -1):
        if pending_words[-size:] == fragment_words[:size]:
            tail = fragment.split()[size:]
            return f"{pending} {' '.join(tail)}".strip() if tail else pending

    return f"{pending} {fragment}"


class TranscriptAccumulator:
    """
    Merges fragments into a pending utterance and decides when it is final.

    Args:
        silence_threshold_s: Seconds without a new fragment before committing
        wake_phrase: Case-insensitive phrase that commits immediately
        clock: Time source (monotonic seconds)
        on_final: Called with the committed utterance
        on_wake_word: Called when the wake phrase is heard, before the
            utterance containing it is committed
    """

    def __init__(
        self,
        silence_threshold_s: float = 1.5,
        wake_phrase: Optional[str] = "hey goggins",
        clock: Optional[Clock] = None,
        on_final: Optional[Callable[[str], None]] = None,
        on_wake_word: Optional[Callable[[], None]] = None,
    ):
        self.silence_threshold_s = silence_threshold_s
        self.wake_phrase = (wake_phrase or "").strip().lower()
        self.on_final = on_final
        self.on_wake_word = on_wake_word
        self._clock = clock or MonotonicClock()

        self._pending = ""
        self._last_fragment_time: Optional[float] = None

    @property
    def pending(self) -> str:
        return self._pending

    @property
    def last_fragment_time(self) -> Optional[float]:
        return self._last_fragment_time

    def contains_wake_phrase(self, text: str) -> bool:
        return bool(self.wake_phrase) and self.wake_phrase in text.lower()

    def add(self, fragment: str) -> bool:
        """Add a recognized fragment. Returns False if it was dropped as noise."""
        if is_noise_fragment(fragment):
            logger.debug("Dropped noise fragment: %r", fragment)
            return False

        self._pending = merge_fragment(self._pending, fragment)
        self._last_fragment_time = self._clock.now()
        logger.debug("Accumulated: %r", self._pending)

        if self.contains_wake_phrase(self._pending):
            logger.info("Wake phrase heard: %r", self.wake_phrase)
            text = self._take()
            if self.on_wake_word:
                self.on_wake_word()
            self._emit(text)

        return True

    def check(self) -> Optional[str]:
        """Periodic silence check; commits and returns the utterance when due."""
        if not self._pending or self._last_fragment_time is None:
            return None

        silent_for = self._clock.now() - self._last_fragment_time
        if silent_for < self.silence_threshold_s:
            return None

        logger.debug("No new fragment for %.2fs, committing", silent_for)
        return self.flush()

    def flush(self) -> Optional[str]:
        """Commit whatever is pending now."""
        text = self._take()
        self._emit(text)
        return text or None

    def clear(self) -> None:
        """Discard the pending utterance and reset the silence timer."""
        if self._pending:
            logger.debug("Discarding pending utterance: %r", self._pending)
        self._pending = ""
        self._last_fragment_time = None

    def _take(self) -> str:
        text = self._pending.strip()
        self.clear()
        return text

    def _emit(self, text: str) -> None:
        if not text:
            return
        logger.info("Final transcript: %r", text)
        if self.on_final:
            self.on_final(text)

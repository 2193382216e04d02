"""
Intervention policy.

Decides, from the productivity score of each activity sample, whether the
coach should say something on its own: a proactive nudge after sustained
distraction, a periodic check-in, or an immediate callout. A callout also
opens an auto-listen window so the user can answer without the wake phrase.

Scores run from 0 (locked in) to 10 (fully distracted).
"""

import logging
import random
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from stayhard_assistant.assistant.timing import Clock, MonotonicClock
from stayhard_assistant.config import PolicySettings

logger = logging.getLogger(__name__)


@dataclass
class ActivitySample:
    """One observation of what the user is doing."""

    timestamp: float
    description: str
    category: str = "other"  # work, study, entertainment, social, other
    app_hint: Optional[str] = None

    @property
    def dedup_key(self) -> str:
        """Identifier used to avoid calling out the same distraction twice."""
        return (self.app_hint or self.description or "").strip()


class ActivityWindow:
    """Bounded, time-ordered ring of recent activity samples."""

    def __init__(self, max_entries: int = 15, clock: Optional[Clock] = None):
        self._samples: deque[ActivitySample] = deque(maxlen=max_entries)
        self._clock = clock or MonotonicClock()

    def add(self, sample: ActivitySample) -> None:
        self._samples.append(sample)

    def recent(self, seconds: float = 60.0) -> list[ActivitySample]:
        cutoff = self._clock.now() - seconds
        return [s for s in self._samples if s.timestamp >= cutoff]

    def latest(self) -> Optional[ActivitySample]:
        return self._samples[-1] if self._samples else None

    def clear(self) -> None:
        self._samples.clear()

    def __len__(self) -> int:
        return len(self._samples)


class InterventionAction(str, Enum):
    NONE = "none"  # Productive, nothing to say
    PAUSED = "paused"  # Natural pause not over yet
    PROACTIVE = "proactive"
    CHECK_IN = "check_in"
    CALLOUT = "callout"
    DUPLICATE = "duplicate"  # Same distraction already called out
    HELD = "held"  # Would speak, but a conversation is running


SPEAKING_ACTIONS = frozenset(
    {InterventionAction.PROACTIVE, InterventionAction.CHECK_IN, InterventionAction.CALLOUT}
)


@dataclass
class InterventionDecision:
    action: InterventionAction
    score: float
    key: Optional[str] = None
    escalation_level: int = 0
    auto_listen: bool = False

    @property
    def should_speak(self) -> bool:
        return self.action in SPEAKING_ACTIONS


class InterventionPolicy:
    """
    Turns scores into interventions.

    Evaluation order per sample:
        1. Tracking: low-productivity timer, escalation level, and dedup
           reset once the score recovers
        2. Natural pause: stay quiet unless enough time passed since the
           last message, or the score is high priority
        3. Proactive nudge after sustained distraction, subject to a
           cooldown that shrinks as escalation rises
        4. Periodic check-in
        5. Callout, unless the same distraction was already called out

    Anything that would speak while a conversation is running comes back
    as HELD. Speaking decisions only take effect (dedup key, check-in
    timer, last-response time) once committed, so a line that never
    reaches the user does not count.

    Args:
        settings: Thresholds and durations
        clock: Time source (seconds)
        rng: Random source for check-in intervals
    """

    def __init__(
        self,
        settings: Optional[PolicySettings] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings or PolicySettings()
        self._clock = clock or MonotonicClock()
        self._rng = rng or random.Random()

        self._low_since: Optional[float] = None
        self._escalation_level = 0
        self._last_called_out: Optional[str] = None
        self._last_message_time: Optional[float] = None
        self._last_response_time: Optional[float] = None
        # Check-ins start one interval into the session, not on the first sample
        self._last_check_in_time = self._clock.now()
        self._next_check_in = self._draw_check_in_interval()

    @property
    def escalation_level(self) -> int:
        return self._escalation_level

    @property
    def last_called_out(self) -> Optional[str]:
        return self._last_called_out

    def low_productivity_duration(self) -> float:
        if self._low_since is None:
            return 0.0
        return self._clock.now() - self._low_since

    def proactive_cooldown(self) -> float:
        """Cooldown between proactive nudges: max at level 0, min at level 2."""
        s = self.settings
        factor = max(0.0, min(1.0, self._escalation_level / 2))
        return s.proactive_cooldown_min_s + (s.proactive_cooldown_max_s - s.proactive_cooldown_min_s) * (1 - factor)

    def record_message(self, role: str) -> None:
        """Stamp a message of any kind; assistant messages also count as responses."""
        now = self._clock.now()
        self._last_message_time = now
        if role == "assistant":
            self._last_response_time = now

    def commit(self, decision: InterventionDecision) -> None:
        """
        Apply a speaking decision once its line was delivered.

        A callout arms dedup for its key and a check-in restarts the
        check-in timer. The last-response time is stamped separately
        through ``record_message``, when the line is shown.
        """
        if decision.action is InterventionAction.CALLOUT:
            self._last_called_out = decision.key
        elif decision.action is InterventionAction.CHECK_IN:
            self._last_check_in_time = self._clock.now()
            self._next_check_in = self._draw_check_in_interval()

    def evaluate(
        self,
        score: float,
        sample: Optional[ActivitySample] = None,
        conversing: bool = False,
        commit: bool = True,
    ) -> InterventionDecision:
        """
        Decide what to do about one scored sample.

        Args:
            score: Distraction score, 0-10
            sample: The sample that was scored
            conversing: A conversation is running; speaking actions are held
            commit: Treat a speaking decision as delivered right away. Pass
                False when the line may still be dropped, and call
                ``commit()`` plus ``record_message("assistant")`` once it
                has actually been said.
        """
        now = self._clock.now()
        s = self.settings
        low = score > s.intervention_threshold

        self._update_tracking(low, now)

        def decide(action: InterventionAction, key: Optional[str] = None) -> InterventionDecision:
            if action in SPEAKING_ACTIONS and conversing:
                logger.debug("%s due but user is in a conversation", action.value)
                action = InterventionAction.HELD
            decision = InterventionDecision(
                action=action,
                score=score,
                key=key,
                escalation_level=self._escalation_level,
                auto_listen=action is InterventionAction.CALLOUT,
            )
            if decision.should_speak:
                logger.info("Intervention: %s (score %.1f, level %d)", action.value, score, self._escalation_level)
                if commit:
                    self.commit(decision)
                    self.record_message("assistant")
            return decision

        quiet_for = None if self._last_message_time is None else now - self._last_message_time
        high_priority = score >= s.high_priority_score
        if quiet_for is not None and quiet_for < s.natural_pause_s and not high_priority:
            logger.debug("Natural pause: %.0fs since last message", quiet_for)
            return decide(InterventionAction.PAUSED)

        if not low:
            return decide(InterventionAction.NONE)

        if self._proactive_due(now):
            return decide(InterventionAction.PROACTIVE)

        if now - self._last_check_in_time >= self._next_check_in:
            return decide(InterventionAction.CHECK_IN)

        key = sample.dedup_key if sample is not None else ""
        if key and key == self._last_called_out:
            logger.debug("Already called out %r, staying quiet", key)
            return decide(InterventionAction.DUPLICATE, key)

        return decide(InterventionAction.CALLOUT, key or None)

    def _update_tracking(self, low: bool, now: float) -> None:
        if not low:
            if self._low_since is not None or self._last_called_out:
                logger.debug("Productivity recovered, resetting tracking")
            self._low_since = None
            self._escalation_level = 0
            self._last_called_out = None
            return

        if self._low_since is None:
            self._low_since = now

        duration = now - self._low_since
        first_step, second_step = self.settings.escalation_steps_s
        if duration >= second_step:
            self._escalation_level = 2
        elif duration >= first_step:
            self._escalation_level = 1
        else:
            self._escalation_level = 0

    def _proactive_due(self, now: float) -> bool:
        if self.low_productivity_duration() < self.settings.proactive_trigger_s:
            return False
        if self._last_response_time is None:
            return True
        return now - self._last_response_time >= self.proactive_cooldown()

    def _draw_check_in_interval(self) -> float:
        return self._rng.uniform(self.settings.check_in_min_s, self.settings.check_in_max_s)

"""
Adaptive conversation memory.

Tracks what the user said they are working on, their apparent mood and
any deadline, cross-checked against what the screen actually shows.
The generator renders a snapshot of it into the prompt.
"""

import logging
import re
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Sequence

from stayhard_assistant.assistant.policy import ActivitySample

logger = logging.getLogger(__name__)


class UserMood(str, Enum):
    GRINDING = "grinding"
    STRUGGLING = "struggling"
    MAKING_EXCUSES = "making-excuses"
    DISTRACTED = "distracted"
    DEFEATED = "defeated"
    MOTIVATED = "motivated"


# First match wins
_MOOD_PATTERNS = (
    (UserMood.DEFEATED, re.compile(r"can't|too hard|impossible|give up|quit")),
    (UserMood.GRINDING, re.compile(r"trying|working on|focusing|getting it done|pushing through")),
    (UserMood.MAKING_EXCUSES, re.compile(r"but |however |just one|need a break|tired|maybe later")),
    (UserMood.STRUGGLING, re.compile(r"stuck|confused|don't know|not sure|help")),
    (UserMood.MOTIVATED, re.compile(r"let's go|ready|motivated|pumped|excited")),
)

_GOAL_HINT = re.compile(
    r"goal|working on|trying to|need to|finish|complete|build|create|write|code|project"
    r"|deadline|task|assignment|report|want to|plan to|going to"
)
_GOAL_STATEMENT = re.compile(r"goal\s+(?:is\s+)?(?:to\s+)?(.+?)(?:\.|$)", re.IGNORECASE)
_DEADLINE_HINT = re.compile(r"by \d|deadline|due|tomorrow|today|tonight|this week")
_DEADLINE = re.compile(
    r"(by \d+\s?[ap]m|deadline [^.!?]+|due [^.!?]+|tomorrow|today|tonight|this week)",
    re.IGNORECASE,
)

WORK_CATEGORIES = frozenset({"work", "study"})
MAX_SNIPPET = 150


@dataclass
class MemorySnapshot:
    """Point-in-time copy of the conversation memory."""

    mood: UserMood = UserMood.DISTRACTED
    current_goal: Optional[str] = None
    current_task: Optional[str] = None
    deadline: Optional[str] = None
    recent_topic: Optional[str] = None
    last_assistant_message: Optional[str] = None
    user_has_shared_goal: bool = False
    total_exchanges: int = 0
    session_start: float = 0.0


class ConversationMemory:
    """Per-conversation adaptive context, reset on every conversation exit."""

    def __init__(self, clock=time.time):
        self._clock = clock
        self._state = MemorySnapshot(session_start=clock())

    def update_from_user_message(self, message: str, activities: Sequence[ActivitySample] = ()) -> None:
        state = self._state
        state.total_exchanges += 1
        lowered = message.lower()

        for mood, pattern in _MOOD_PATTERNS:
            if pattern.search(lowered):
                state.mood = mood
                break

        if _GOAL_HINT.search(lowered):
            state.user_has_shared_goal = True
            if "goal" in lowered:
                match = _GOAL_STATEMENT.search(message)
                if match:
                    state.current_goal = match.group(1).strip()
                    state.current_task = state.current_goal
            else:
                state.current_task = message[:MAX_SNIPPET].strip()
            logger.info("Goal detected: %r", state.current_task or state.current_goal)

        if _DEADLINE_HINT.search(lowered):
            match = _DEADLINE.search(message)
            if match:
                state.deadline = match.group(0)

        if activities:
            self._cross_check(activities)

    def _cross_check(self, activities: Sequence[ActivitySample]) -> None:
        """Trust the screen over what the user claims."""
        state = self._state
        work = sum(1 for a in activities if a.category in WORK_CATEGORIES)
        work_ratio = work / len(activities)

        if state.mood is UserMood.GRINDING and work_ratio < 0.3:
            state.mood = UserMood.MAKING_EXCUSES
        if state.mood is UserMood.DISTRACTED and work_ratio >= 0.7:
            state.mood = UserMood.GRINDING

        latest = activities[-1]
        if latest.description and latest.description != "Unknown":
            state.recent_topic = latest.description

    def update_from_assistant_message(self, text: str) -> None:
        self._state.last_assistant_message = text[:MAX_SNIPPET]

    def snapshot(self) -> MemorySnapshot:
        return replace(self._state)

    def session_minutes(self) -> int:
        return int((self._clock() - self._state.session_start) // 60)

    def reset(self) -> None:
        self._state = MemorySnapshot(session_start=self._clock())
        logger.debug("Conversation memory reset")

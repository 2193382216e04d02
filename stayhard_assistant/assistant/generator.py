"""
Response generation.

``ResponseGenerator`` is the contract the orchestrator and session depend
on; ``LLMResponseGenerator`` renders conversation state into an LLM call
and cleans up whatever comes back.
"""

import asyncio
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Sequence

from stayhard_assistant.assistant.llm import LLMBackend
from stayhard_assistant.assistant.memory import MemorySnapshot
from stayhard_assistant.assistant.policy import ActivitySample, InterventionAction

if TYPE_CHECKING:
    from stayhard_assistant.assistant.orchestrator import ConversationMessage

logger = logging.getLogger(__name__)

UNSAFE_PATTERNS = (
    re.compile(r"self.?harm", re.IGNORECASE),
    re.compile(r"kill.*yourself", re.IGNORECASE),
    re.compile(r"suicide", re.IGNORECASE),
    re.compile(r"hurt.*yourself", re.IGNORECASE),
)

SAFE_LINE = "You're better than this. Stay focused and stay hard."
SAFE_CLOSING_LINE = "Stay hard. I can't make you lock in, that has to come from you."
FALLBACK_LINE = "What are you working on? Tell me."
FALLBACK_CLOSING_LINE = "Stay hard. Get back to it."

PERSONA = (
    "You are David Goggins acting as a tough productivity coach. "
    "Speak in 2-3 short sentences, aggressive but never cruel. "
    "Output ONLY the words to be spoken, no labels, no quotes."
)

_INTERVENTION_BRIEFS = {
    InterventionAction.CALLOUT: "Call the user out for what they are doing right now. Name it.",
    InterventionAction.PROACTIVE: "The user has been off task for a while. Push them back to work.",
    InterventionAction.CHECK_IN: "Check in: ask what they are working on and what the next step is.",
}


@dataclass
class GeneratedReply:
    text: str
    timestamp: float = field(default_factory=time.time)


class GenerationError(Exception):
    """The language model could not produce a reply."""


class ResponseGenerator(ABC):
    """One-shot reply producer."""

    @abstractmethod
    async def generate(
        self,
        history: Sequence["ConversationMessage"],
        activities: Sequence[ActivitySample],
        should_end: bool,
        memory: Optional[MemorySnapshot] = None,
    ) -> GeneratedReply:
        """Reply to the last user message in ``history``."""
        pass

    @abstractmethod
    async def generate_intervention(
        self,
        kind: InterventionAction,
        activities: Sequence[ActivitySample],
        score: float,
        escalation_level: int = 0,
    ) -> GeneratedReply:
        """Unprompted line for a callout, nudge or check-in."""
        pass


def clean_reply(text: str) -> str:
    """Strip wrapping quotes, code fences and speaker labels."""
    text = (text or "").strip()
    text = re.sub(r"^```[\s\S]*?```$", "", text, flags=re.MULTILINE)
    text = re.sub(r"^(goggins|assistant|coach)\s*:\s*", "", text.strip(), flags=re.IGNORECASE)
    text = re.sub(r"^[\"']|[\"']$", "", text.strip())
    return text.strip()


def is_unsafe(text: str) -> bool:
    return any(p.search(text) for p in UNSAFE_PATTERNS)


def finalize_reply(text: str, should_end: bool = False) -> str:
    """Clean a raw reply, replacing unsafe or empty output with a fixed line."""
    text = clean_reply(text)
    if is_unsafe(text):
        logger.warning("Generated reply matched the unsafe-content list, replacing it")
        return SAFE_CLOSING_LINE if should_end else SAFE_LINE
    if not text:
        return FALLBACK_CLOSING_LINE if should_end else FALLBACK_LINE
    return text


def summarize_activities(activities: Sequence[ActivitySample], limit: int = 5) -> str:
    if not activities:
        return "unknown"
    parts = []
    for sample in list(activities)[-limit:]:
        if sample.app_hint:
            parts.append(f"{sample.description} ({sample.app_hint}, {sample.category})")
        else:
            parts.append(f"{sample.description} ({sample.category})")
    return "; ".join(parts)


class LLMResponseGenerator(ResponseGenerator):
    """
    ResponseGenerator backed by an ``LLMBackend``.

    Args:
        llm: Backend to call (blocking; run in a worker thread)
        max_tokens: Generation cap per reply
        temperature: Sampling temperature
        history_turns: Earlier messages passed as chat context
    """

    def __init__(
        self,
        llm: LLMBackend,
        max_tokens: int = 150,
        temperature: float = 0.8,
        history_turns: int = 6,
    ):
        self.llm = llm
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.history_turns = history_turns

    async def generate(self, history, activities, should_end, memory=None) -> GeneratedReply:
        if not history:
            raise GenerationError("Nothing to reply to")

        last = history[-1]
        context = [
            {"role": m.role.value if hasattr(m.role, "value") else m.role, "content": m.text}
            for m in list(history)[:-1][-self.history_turns:]
        ]
        system_prompt = self.build_system_prompt(activities, should_end, memory)

        text = await self._call(last.text, context, system_prompt)
        return GeneratedReply(text=finalize_reply(text, should_end))

    async def generate_intervention(self, kind, activities, score, escalation_level=0) -> GeneratedReply:
        brief = _INTERVENTION_BRIEFS.get(kind, _INTERVENTION_BRIEFS[InterventionAction.CALLOUT])
        intensity = ("firm", "harsh", "relentless")[max(0, min(2, escalation_level))]
        system_prompt = f"{PERSONA}\n{brief} Tone: {intensity}."
        prompt = f"Distraction score {score:.0f}/10. Recent activity: {summarize_activities(activities)}"

        text = await self._call(prompt, None, system_prompt)
        return GeneratedReply(text=finalize_reply(text))

    def build_system_prompt(
        self,
        activities: Sequence[ActivitySample],
        should_end: bool,
        memory: Optional[MemorySnapshot],
    ) -> str:
        lines = [PERSONA, "", "=== THEIR CURRENT STATE ==="]
        if memory is not None:
            lines.append(f"- Exchange: #{memory.total_exchanges}")
            lines.append(f"- Mood: {memory.mood.value}")
            goal = memory.current_goal or memory.current_task
            lines.append(f"- Stated goal: {goal or 'UNKNOWN, demand to know it'}")
            if memory.deadline:
                lines.append(f"- Deadline: {memory.deadline}")
            if memory.last_assistant_message:
                lines.append(f'- You last said: "{memory.last_assistant_message}"')
        lines.append(f"- Current activity: {summarize_activities(activities)}")
        lines.append("")
        lines.append("React to their exact words, then ask about the next specific step.")
        if should_end:
            lines.append("FINAL EXCHANGE: wrap up, reference their progress, say goodbye.")
        return "\n".join(lines)

    async def _call(self, prompt: str, context: Optional[list[dict]], system_prompt: str) -> str:
        try:
            response = await asyncio.to_thread(
                self.llm.generate,
                prompt,
                context,
                system_prompt,
                self.max_tokens,
                self.temperature,
            )
        except Exception as e:
            raise GenerationError(f"{type(self.llm).__name__} failed: {e}") from e

        logger.debug("LLM %s replied in %.0fms", response.model, response.latency_ms)
        return response.text

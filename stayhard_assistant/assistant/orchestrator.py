"""
Conversation orchestrator.

Owns the conversation state machine:

    monitoring ──wake word / callout / any utterance──▶ conversation
    conversation ──final transcript──▶ responding
    responding ──reply spoken──▶ conversation   (or monitoring on the last exchange)
    responding ──user talks over it──▶ conversation
    conversation ──no reply within timeout + grace──▶ monitoring

It is also the authority on whether microphone audio reaches the
transcriber: nothing is forwarded while a reply is being generated or
played back, so the coach never hears itself.
"""

import inspect
import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Sequence

import numpy as np

from stayhard_assistant.assistant.audio_io import VoiceActivityDetector
from stayhard_assistant.assistant.generator import ResponseGenerator
from stayhard_assistant.assistant.memory import ConversationMemory
from stayhard_assistant.assistant.policy import ActivitySample
from stayhard_assistant.assistant.speaker import Speaker
from stayhard_assistant.assistant.timing import Scheduler, TimerHandle, spawn
from stayhard_assistant.assistant.transcriber import IncrementalTranscriber
from stayhard_assistant.config import ConversationSettings

logger = logging.getLogger(__name__)


class ConversationState(str, Enum):
    MONITORING = "monitoring"  # Idle, listening passively
    CONVERSATION = "conversation"  # Waiting for the user to speak
    RESPONDING = "responding"  # Generating / speaking a reply


class EntryMode(str, Enum):
    WAKE_WORD = "wake_word"
    CALLOUT_AUTO_LISTEN = "callout_auto_listen"
    AUTO_DETECT = "auto_detect"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ConversationMessage:
    role: MessageRole
    text: str
    timestamp: float


@dataclass(frozen=True)
class VoiceStatus:
    """Read-only view of the orchestrator for UIs and IPC."""

    state: ConversationState
    mode: Optional[EntryMode]
    exchange_count: int
    is_listening: bool
    playback_active: bool
    stt_ready: bool


@dataclass
class ConversationCallbacks:
    """Outbound notifications to the presentation layer (all optional).

    ``on_speak`` may return an awaitable; the orchestrator then waits for
    it (i.e. for playback to finish) before taking the next turn.
    """

    on_state_change: Optional[Callable[[VoiceStatus], None]] = None
    on_partial_transcript: Optional[Callable[[str], None]] = None
    on_speak: Optional[Callable[[str, Any], Any]] = None
    on_stop_audio: Optional[Callable[[], None]] = None
    on_message: Optional[Callable[[ConversationMessage], None]] = None


class ProcessingGuard:
    """Single-slot guard: at most one response generation in flight."""

    def __init__(self):
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def try_acquire(self) -> bool:
        if self._held:
            return False
        self._held = True
        return True

    def release(self) -> None:
        self._held = False


class ConversationOrchestrator:
    """
    Voice conversation state machine.

    Args:
        transcriber: Incremental transcriber; the orchestrator subscribes to it
        generator: Produces replies
        scheduler: Timers for the response timeout
        speaker: Turns replies into audio (None for text-only)
        settings: Wake phrase, exchange limit, timeouts
        callbacks: Presentation-layer notifications
        memory: Adaptive per-conversation context
        vad: Detects the user talking over a reply being generated
        wall_clock: Timestamp source for messages
    """

    def __init__(
        self,
        transcriber: IncrementalTranscriber,
        generator: ResponseGenerator,
        scheduler: Scheduler,
        speaker: Optional[Speaker] = None,
        settings: Optional[ConversationSettings] = None,
        callbacks: Optional[ConversationCallbacks] = None,
        memory: Optional[ConversationMemory] = None,
        vad: Optional[VoiceActivityDetector] = None,
        wall_clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or ConversationSettings()
        self.callbacks = callbacks or ConversationCallbacks()
        self._transcriber = transcriber
        self._generator = generator
        self._scheduler = scheduler
        self._speaker = speaker
        self._memory = memory or ConversationMemory()
        self._vad = vad or VoiceActivityDetector(
            sample_rate=transcriber.sample_rate,
            energy_threshold=self.settings.vad_energy_threshold,
            min_speech_frames=self.settings.barge_in_frames,
        )
        self._wall_clock = wall_clock

        self._state = ConversationState.MONITORING
        self._mode: Optional[EntryMode] = None
        self._history: list[ConversationMessage] = []
        self._exchange_count = 0
        self._activities: list[ActivitySample] = []
        self._playback_active = False
        self._interrupted = False
        self._guard = ProcessingGuard()
        self._barge_in_frames: deque[np.ndarray] = deque(maxlen=max(1, self.settings.barge_in_frames))

        self._timeout_timer: Optional[TimerHandle] = None
        self._grace_timer: Optional[TimerHandle] = None

        transcriber.on_final = self.on_final_transcript
        transcriber.on_partial = self.handle_partial_transcript
        transcriber.on_wake_word = self.handle_wake_word
        transcriber.on_voice_activity = self.handle_user_speaking

    # -- queries -----------------------------------------------------------

    @property
    def state(self) -> ConversationState:
        return self._state

    @property
    def mode(self) -> Optional[EntryMode]:
        return self._mode

    @property
    def exchange_count(self) -> int:
        return self._exchange_count

    @property
    def playback_active(self) -> bool:
        return self._playback_active

    @property
    def is_processing(self) -> bool:
        return self._guard.held

    @property
    def memory(self) -> ConversationMemory:
        return self._memory

    def status(self) -> VoiceStatus:
        return VoiceStatus(
            state=self._state,
            mode=self._mode,
            exchange_count=self._exchange_count,
            is_listening=self._forwarding_audio(),
            playback_active=self._playback_active,
            stt_ready=self._transcriber.is_ready,
        )

    def history(self) -> list[ConversationMessage]:
        return list(self._history)

    def update_activity_context(self, activities: Sequence[ActivitySample]) -> None:
        self._activities = list(activities)

    # -- audio gate --------------------------------------------------------

    def _forwarding_audio(self) -> bool:
        if self._state is ConversationState.RESPONDING or self._playback_active:
            return False
        # After a barge-in the user's new turn is captured while the old reply finishes
        return not self._guard.held or self._interrupted

    def accept_frame(self, frame) -> None:
        """Route one microphone frame: transcriber, barge-in detector, or nowhere."""
        if isinstance(frame, (bytes, bytearray, memoryview)):
            frame = np.frombuffer(frame, dtype=np.int16)

        if self._state is ConversationState.RESPONDING:
            if not self._playback_active:
                self._barge_in_frames.append(frame)
                if self._vad.feed(frame):
                    self.handle_user_speaking(True)
            return

        if self._forwarding_audio():
            self._transcriber.accept_frame(frame)

    # -- playback notifications --------------------------------------------

    def notify_playback_started(self) -> None:
        if self._playback_active:
            return
        self._playback_active = True
        self._transcriber.clear()
        logger.debug("Playback started, microphone gated")
        self._notify_state()

    def notify_playback_ended(self) -> None:
        if not self._playback_active:
            return
        self._playback_active = False
        self._transcriber.clear()
        logger.debug("Playback ended")
        self._notify_state()

    # -- transcriber events ------------------------------------------------

    def handle_partial_transcript(self, text: str) -> None:
        if self._state is ConversationState.CONVERSATION:
            self._notify("on_partial_transcript", text)

    def handle_wake_word(self) -> None:
        if self._state is not ConversationState.MONITORING:
            logger.debug("Wake word ignored in %s", self._state.value)
            return
        self._enter_conversation(EntryMode.WAKE_WORD)

    def handle_user_speaking(self, active: bool) -> None:
        """Voice activity; while a reply is being generated this is an interruption."""
        if not active or self._state is not ConversationState.RESPONDING:
            return

        logger.info("User interrupted the reply")
        self._interrupted = True
        self._notify("on_stop_audio")
        self._set_state(ConversationState.CONVERSATION)
        self._arm_response_timeout()

        # Hand the frames that triggered the barge-in to the transcriber
        preroll = list(self._barge_in_frames)
        self._barge_in_frames.clear()
        for frame in preroll:
            self._transcriber.accept_frame(frame)

    def on_final_transcript(self, text: str) -> bool:
        """Transcriber callback: accept the utterance and respond in the background."""
        if not self._accept_transcript(text):
            return False
        spawn(self._respond())
        return True

    async def handle_final_transcript(self, text: str) -> bool:
        """Accept the utterance and respond. Returns False if it was dropped."""
        if not self._accept_transcript(text):
            return False
        await self._respond()
        return True

    def _accept_transcript(self, text: str) -> bool:
        text = text.strip()
        if text == self.settings.no_speech_sentinel or len(text) < self.settings.min_transcript_chars:
            logger.debug("Ignoring trivial transcript: %r", text)
            return False
        if self._state is ConversationState.RESPONDING:
            logger.info("Dropping transcript while responding: %r", text)
            return False
        if not self._guard.try_acquire():
            logger.info("Dropping transcript, a reply is already being generated: %r", text)
            return False

        if self._state is ConversationState.MONITORING:
            if not self.settings.auto_detect_enabled:
                self._guard.release()
                logger.debug("Not in a conversation, ignoring: %r", text)
                return False
            self._enter_conversation(EntryMode.AUTO_DETECT)

        self._cancel_timers()
        self._interrupted = False
        self._memory.update_from_user_message(text, self._activities)
        self._append(MessageRole.USER, text)
        self._set_state(ConversationState.RESPONDING)
        return True

    # -- entry points ------------------------------------------------------

    def start_callout_conversation(self, activities: Optional[Sequence[ActivitySample]] = None) -> bool:
        """Open an auto-listen window after a callout."""
        if activities is not None:
            self.update_activity_context(activities)
        if self._state is not ConversationState.MONITORING:
            logger.debug("Already in %s, not opening a callout window", self._state.value)
            return False
        self._enter_conversation(EntryMode.CALLOUT_AUTO_LISTEN)
        return True

    def shutdown(self) -> None:
        """Cancel timers and return to monitoring."""
        self._cancel_timers()
        if self._state is not ConversationState.MONITORING:
            self._exit_conversation("shutdown")

    # -- response pipeline -------------------------------------------------

    async def _respond(self) -> None:
        try:
            self._exchange_count += 1
            should_end = self._exchange_count >= self.settings.max_exchanges
            logger.info(
                "Generating reply %d/%d%s",
                self._exchange_count,
                self.settings.max_exchanges,
                " (final)" if should_end else "",
            )
            reply = await self._generator.generate(
                self.history(), list(self._activities), should_end, self._memory.snapshot()
            )
        except Exception as e:
            logger.error("Reply generation failed: %s", e)
            self._guard.release()
            self._exit_conversation("generation failed")
            return

        self._append(MessageRole.ASSISTANT, reply.text)
        self._memory.update_from_assistant_message(reply.text)

        try:
            if self._interrupted or self._state is not ConversationState.RESPONDING:
                logger.info("Reply arrived after an interruption, not speaking it")
                return
            await self._deliver(reply.text)
        finally:
            self._interrupted = False
            self._guard.release()

        if self._state is not ConversationState.RESPONDING:
            return
        if should_end:
            self._exit_conversation("exchange limit reached")
        else:
            self._set_state(ConversationState.CONVERSATION)
            self._arm_response_timeout()

    async def _deliver(self, text: str) -> None:
        audio_path = None
        if self._speaker is not None:
            try:
                audio_path = await self._speaker.synthesize(text)
            except Exception:
                logger.exception("Speech synthesis failed, delivering text only")
        if audio_path is None:
            logger.debug("No audio for reply, text only")

        if self._interrupted:
            return

        result = self._notify("on_speak", text, audio_path)
        if inspect.isawaitable(result):
            try:
                await result
            except Exception:
                logger.exception("Reply playback failed")

    # -- transitions -------------------------------------------------------

    def _set_state(self, state: ConversationState) -> None:
        previous = self._state
        self._state = state
        # Every transition invalidates audio heard under the old state
        self._transcriber.clear()
        if state is ConversationState.RESPONDING:
            self._vad.reset()
            self._barge_in_frames.clear()
        if previous is not state:
            logger.info("State: %s -> %s", previous.value, state.value)
        self._notify_state()

    def _enter_conversation(self, mode: EntryMode) -> None:
        logger.info("Entering conversation (%s)", mode.value)
        self._mode = mode
        self._exchange_count = 0
        self._history = []
        self._interrupted = False
        self._set_state(ConversationState.CONVERSATION)
        self._arm_response_timeout()

    def _exit_conversation(self, reason: str) -> None:
        logger.info("Conversation ended: %s", reason)
        self._cancel_timers()
        self._mode = None
        self._history = []
        self._exchange_count = 0
        self._activities = []
        self._interrupted = False
        self._memory.reset()
        self._set_state(ConversationState.MONITORING)

    # -- timers ------------------------------------------------------------

    def _arm_response_timeout(self) -> None:
        self._cancel_timers()
        self._timeout_timer = self._scheduler.call_later(
            self.settings.response_timeout_s, self._on_response_timeout
        )

    def _cancel_timers(self) -> None:
        for timer in (self._timeout_timer, self._grace_timer):
            if timer is not None:
                timer.cancel()
        self._timeout_timer = None
        self._grace_timer = None

    def _on_response_timeout(self) -> None:
        self._timeout_timer = None
        if self._state is ConversationState.MONITORING:
            return
        logger.info("No response in %.0fs, waiting %.1fs grace",
                    self.settings.response_timeout_s, self.settings.timeout_grace_s)
        self._grace_timer = self._scheduler.call_later(self.settings.timeout_grace_s, self._on_grace_expired)

    def _on_grace_expired(self) -> None:
        self._grace_timer = None
        if self._state is ConversationState.MONITORING:
            return
        if self._guard.held:
            logger.debug("Reply in flight at timeout, extending")
            self._arm_response_timeout()
            return
        self._exit_conversation("response timeout")

    # -- notifications -----------------------------------------------------

    def _append(self, role: MessageRole, text: str) -> None:
        message = ConversationMessage(role=role, text=text, timestamp=self._wall_clock())
        self._history.append(message)
        self._notify("on_message", message)

    def _notify_state(self) -> None:
        self._notify("on_state_change", self.status())

    def _notify(self, name: str, *args) -> Any:
        callback = getattr(self.callbacks, name)
        if callback is None:
            return None
        try:
            return callback(*args)
        except Exception:
            logger.exception("%s callback failed", name)
            return None

"""
Live coaching session: microphone, transcriber, orchestrator, policy,
generator, speaker and playback wired together on one event loop.

Activity scoring (screen capture plus a vision model) runs elsewhere and
reports in through ``on_activity``.
"""

import asyncio
import logging
import time
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional

from stayhard_assistant.assistant.audio_io import AudioConfig, AudioOutput, AudioSource
from stayhard_assistant.assistant.generator import GenerationError, LLMResponseGenerator, ResponseGenerator
from stayhard_assistant.assistant.llm import create_llm
from stayhard_assistant.assistant.orchestrator import (
    ConversationCallbacks,
    ConversationMessage,
    ConversationOrchestrator,
    ConversationState,
    MessageRole,
    VoiceStatus,
)
from stayhard_assistant.assistant.policy import (
    ActivitySample,
    ActivityWindow,
    InterventionAction,
    InterventionDecision,
    InterventionPolicy,
)
from stayhard_assistant.assistant.speaker import Speaker
from stayhard_assistant.assistant.timing import AsyncioScheduler, Scheduler
from stayhard_assistant.assistant.transcriber import IncrementalTranscriber
from stayhard_assistant.config import CoachConfig
from stayhard_assistant.stt.base import STTBackend

logger = logging.getLogger(__name__)


class CoachSession:
    """
    Owns every runtime component of the coach.

    Components not passed in are built from ``config`` in ``start()``.

    Usage:
        session = CoachSession(load_config("coach.yaml"))
        await session.run()  # until stop() or cancellation
    """

    def __init__(
        self,
        config: Optional[CoachConfig] = None,
        scheduler: Optional[Scheduler] = None,
        stt_backend: Optional[STTBackend] = None,
        generator: Optional[ResponseGenerator] = None,
        speaker: Optional[Speaker] = None,
        audio_input: Optional[AudioSource] = None,
        audio_output: Optional[AudioOutput] = None,
        on_message: Optional[Callable[[ConversationMessage], None]] = None,
        on_status: Optional[Callable[[VoiceStatus], None]] = None,
        on_partial: Optional[Callable[[str], None]] = None,
    ):
        self.config = config or CoachConfig()
        self.scheduler = scheduler or AsyncioScheduler()
        self.on_message = on_message
        self.on_status = on_status
        self.on_partial = on_partial

        self._stt_backend = stt_backend
        self.generator = generator
        self.speaker = speaker
        self.audio_input = audio_input
        self.audio_output = audio_output

        self.transcriber: Optional[IncrementalTranscriber] = None
        self.orchestrator: Optional[ConversationOrchestrator] = None
        self.policy = InterventionPolicy(self.config.policy, clock=self.scheduler)
        self.activities = ActivityWindow(self.config.policy.max_activity_entries, clock=self.scheduler)

        self._stopped = asyncio.Event()
        self._started = False
        self._intervening = False

    @property
    def is_running(self) -> bool:
        return self._started

    async def build(self) -> None:
        """Load models and construct missing components."""
        cfg = self.config

        if self._stt_backend is None:
            from stayhard_assistant.stt import get_stt_backend

            self._stt_backend = get_stt_backend(cfg.transcriber.backend)
        if not self._stt_backend.is_loaded():
            load_kwargs = {"model_size": cfg.transcriber.model_size, "device": cfg.transcriber.device}
            if cfg.transcriber.host:
                load_kwargs["host"] = cfg.transcriber.host
            await asyncio.to_thread(self._stt_backend.load, **load_kwargs)

        if self.generator is None:
            llm = await asyncio.to_thread(
                create_llm,
                cfg.llm.backend,
                cfg.llm.model,
                host=cfg.llm.host,
                api_key=cfg.llm.api_key,
            )
            self.generator = LLMResponseGenerator(
                llm,
                max_tokens=cfg.llm.max_tokens,
                temperature=cfg.llm.temperature,
                history_turns=cfg.llm.history_turns,
            )

        if self.speaker is None:
            self.speaker = await asyncio.to_thread(Speaker.from_settings, cfg.tts)

        self.transcriber = IncrementalTranscriber(
            self._stt_backend,
            self.scheduler,
            settings=cfg.transcriber,
            sample_rate=cfg.audio.sample_rate,
            wake_phrase=cfg.conversation.wake_phrase,
            no_speech_sentinel=cfg.conversation.no_speech_sentinel,
        )
        self.transcriber.on_error = self._on_transcription_error

        self.orchestrator = ConversationOrchestrator(
            transcriber=self.transcriber,
            generator=self.generator,
            scheduler=self.scheduler,
            speaker=self.speaker,
            settings=cfg.conversation,
            callbacks=ConversationCallbacks(
                on_state_change=self._on_state_change,
                on_partial_transcript=self._on_partial,
                on_speak=self._play,
                on_stop_audio=self._stop_audio,
                on_message=self._on_message,
            ),
        )

        if self.audio_output is None and self.speaker.available:
            self.audio_output = AudioOutput(device=cfg.audio.output_device)
        if self.audio_output is not None:
            self.audio_output.on_start = self.orchestrator.notify_playback_started
            self.audio_output.on_end = self.orchestrator.notify_playback_ended

        if self.audio_input is None and cfg.conversation.enabled:
            self.audio_input = AudioSource(
                AudioConfig(
                    sample_rate=cfg.audio.sample_rate,
                    channels=cfg.audio.channels,
                    chunk_duration_ms=cfg.audio.chunk_duration_ms,
                ),
                device=cfg.audio.input_device,
            )

    async def start(self, listen_now: Optional[bool] = None) -> None:
        if self._started:
            return
        await self.build()

        if self.audio_input is not None:
            self.transcriber.start()
            self.audio_input.start(self.orchestrator.accept_frame)
        else:
            logger.warning("Voice listening disabled, callouts only")

        self._started = True
        self._stopped.clear()
        logger.info("Coach session started (wake phrase %r)", self.config.conversation.wake_phrase)

        if listen_now is None:
            listen_now = self.config.conversation.listen_on_start
        if listen_now and self.audio_input is not None:
            self.orchestrator.start_callout_conversation()

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        if self.audio_input is not None:
            self.audio_input.stop()
        if self.transcriber is not None:
            self.transcriber.stop()
        if self.orchestrator is not None:
            self.orchestrator.shutdown()
        if self.audio_output is not None:
            self.audio_output.stop()
        self._stopped.set()
        logger.info("Coach session stopped")

    async def run(self, listen_now: Optional[bool] = None) -> None:
        """Start, then block until ``stop()`` is called or the task is cancelled."""
        try:
            await self.start(listen_now)
            await self._stopped.wait()
        finally:
            await self.stop()

    async def on_activity(self, sample: ActivitySample, score: float) -> Optional[InterventionDecision]:
        """
        Feed one scored activity sample.

        Returns:
            The policy decision, or None if skipped because the coach is
            talking or a previous intervention is still being delivered
        """
        self.activities.add(sample)
        recent = self.activities.recent(self.config.policy.activity_window_s)
        orchestrator = self.orchestrator

        if orchestrator is not None:
            orchestrator.update_activity_context(recent)
            if orchestrator.playback_active:
                logger.debug("Coach is speaking, skipping activity evaluation")
                return None

        if self._intervening:
            logger.debug("Previous intervention still being delivered, skipping")
            return None

        decision = self.policy.evaluate(score, sample, conversing=self._conversing(), commit=False)
        if not decision.should_speak:
            return decision

        self._intervening = True
        try:
            try:
                reply = await self.generator.generate_intervention(
                    decision.action, recent, score, decision.escalation_level
                )
            except GenerationError as e:
                logger.error("Could not generate %s: %s", decision.action.value, e)
                return decision

            path = await self._synthesize(reply.text)
            # The user may have started talking while the line was prepared
            if self._conversing():
                logger.info("Holding %s, a conversation started", decision.action.value)
                return replace(decision, action=InterventionAction.HELD, auto_listen=False)

            await self._speak_line(reply.text, path)
            self.policy.commit(decision)
        finally:
            self._intervening = False

        if decision.auto_listen and orchestrator is not None and self.config.conversation.enabled:
            orchestrator.start_callout_conversation(recent)
        return decision

    async def say(self, text: str) -> None:
        """Speak an unprompted line outside of a conversation."""
        await self._speak_line(text, await self._synthesize(text))

    def _conversing(self) -> bool:
        orchestrator = self.orchestrator
        if orchestrator is None:
            return False
        return orchestrator.state is not ConversationState.MONITORING or orchestrator.playback_active

    async def _synthesize(self, text: str) -> Optional[Path]:
        if self.speaker is None:
            return None
        try:
            return await self.speaker.synthesize(text)
        except Exception:
            logger.exception("Speech synthesis failed, delivering text only")
            return None

    async def _speak_line(self, text: str, path: Optional[Path]) -> None:
        self._on_message(ConversationMessage(role=MessageRole.ASSISTANT, text=text, timestamp=time.time()))
        playback = self._play(text, path)
        if playback is None:
            return
        try:
            await playback
        except Exception:
            logger.exception("Playback of %r failed", text)

    # -- callbacks ---------------------------------------------------------

    def _play(self, text: str, audio_path: Optional[Path]):
        if audio_path is None or self.audio_output is None:
            return None
        return self.audio_output.play_file(audio_path)

    def _stop_audio(self) -> None:
        if self.audio_output is not None:
            self.audio_output.stop()

    def _on_message(self, message: ConversationMessage) -> None:
        self.policy.record_message(message.role.value)
        if self.on_message is not None:
            self.on_message(message)

    def _on_state_change(self, status: VoiceStatus) -> None:
        if self.on_status is not None:
            self.on_status(status)

    def _on_partial(self, text: str) -> None:
        if self.on_partial is not None:
            self.on_partial(text)

    def _on_transcription_error(self, error: Exception) -> None:
        logger.warning("Transcription pass failed: %s", error)

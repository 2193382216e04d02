#!/usr/bin/env python3
"""
Typed Conversation Example

Drives the conversation state machine from the keyboard instead of a
microphone, with rule-based replies. Useful for seeing the exchange limit
and the callout flow without any model installed.

Commands:
    /yt       report a YouTube tab with a high distraction score
    /quit     exit
    anything else is treated as a final transcript

Usage:
    python coach_typed.py
"""

import asyncio
import time

from stayhard_assistant.assistant.generator import LLMResponseGenerator
from stayhard_assistant.assistant.llm import SimpleLLM
from stayhard_assistant.assistant.orchestrator import ConversationCallbacks, ConversationOrchestrator
from stayhard_assistant.assistant.policy import ActivitySample, InterventionPolicy
from stayhard_assistant.assistant.timing import AsyncioScheduler
from stayhard_assistant.assistant.transcriber import IncrementalTranscriber
from stayhard_assistant.config import ConversationSettings
from stayhard_assistant.stt import get_stt_backend


async def main():
    scheduler = AsyncioScheduler()
    generator = LLMResponseGenerator(SimpleLLM())
    policy = InterventionPolicy(clock=scheduler)

    callbacks = ConversationCallbacks(
        on_state_change=lambda s: print(f"  [{s.state.value}, exchange {s.exchange_count}]"),
        on_speak=lambda text, audio: print(f"Coach: {text}"),
        on_message=lambda m: policy.record_message(m.role.value),
    )
    # The transcriber is never fed audio here; transcripts are typed
    transcriber = IncrementalTranscriber(get_stt_backend("whisper"), scheduler)
    orchestrator = ConversationOrchestrator(
        transcriber,
        generator,
        scheduler,
        settings=ConversationSettings(max_exchanges=3),
        callbacks=callbacks,
    )

    print("Type to talk, /yt to get caught on YouTube, /quit to exit.")
    while True:
        line = (await asyncio.to_thread(input, "> ")).strip()
        if line == "/quit":
            break
        if line == "/yt":
            sample = ActivitySample(time.time(), "Watching videos", "entertainment", "YouTube")
            decision = policy.evaluate(8.0, sample)
            print(f"  policy: {decision.action.value}")
            if decision.should_speak:
                reply = await generator.generate_intervention(decision.action, [sample], 8.0)
                print(f"Coach: {reply.text}")
                if decision.auto_listen:
                    orchestrator.start_callout_conversation([sample])
            continue
        await orchestrator.handle_final_transcript(line)

    orchestrator.shutdown()


if __name__ == "__main__":
    asyncio.run(main())

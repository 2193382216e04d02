#!/usr/bin/env python3
"""
Basic Coach Example

Runs a live session on the microphone: say the wake phrase, talk to the
coach for a few exchanges, and let it go quiet again.

Requirements:
    pip install stayhard-assistant[whisper,piper,audio,ollama]
    ollama pull llama3.2:3b

Usage:
    python coach_basic.py
"""

import asyncio

from stayhard_assistant import CoachConfig
from stayhard_assistant.assistant.session import CoachSession


def main():
    config = CoachConfig()
    config.conversation.wake_phrase = "hey goggins"
    config.conversation.max_exchanges = 3
    config.llm.backend = "ollama"
    config.llm.model = "llama3.2:3b"

    def show(message):
        print(f"{message.role.value:>9}: {message.text}")

    session = CoachSession(config, on_message=show)

    print("\n" + "=" * 50)
    print("Coach Ready!")
    print("=" * 50)
    print(f"\nSay '{config.conversation.wake_phrase}' to talk.")
    print("Press Ctrl+C to stop.\n")

    try:
        asyncio.run(session.run(listen_now=False))
    except KeyboardInterrupt:
        print("\nStay hard.")


if __name__ == "__main__":
    main()

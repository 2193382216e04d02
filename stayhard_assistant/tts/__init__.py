"""
Text-to-speech backends used to voice coaching replies.
"""

from stayhard_assistant.tts.base import SynthesisResult, TTSBackend, Voice
from stayhard_assistant.tts.registry import get_tts_backend, list_tts_backends, register_tts_backend

__all__ = [
    "SynthesisResult",
    "TTSBackend",
    "Voice",
    "get_tts_backend",
    "list_tts_backends",
    "register_tts_backend",
]

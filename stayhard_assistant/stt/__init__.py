"""
Speech-to-text backends used by the incremental transcriber.
"""

from stayhard_assistant.stt.base import STTBackend, TranscriptionResult, TranscriptionSegment
from stayhard_assistant.stt.registry import get_stt_backend, list_stt_backends, register_stt_backend

__all__ = [
    "STTBackend",
    "TranscriptionResult",
    "TranscriptionSegment",
    "get_stt_backend",
    "list_stt_backends",
    "register_stt_backend",
]

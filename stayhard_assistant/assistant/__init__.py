"""
Conversation core of the coach: transcription, turn-taking and interventions.
"""

from stayhard_assistant.assistant.orchestrator import (
    ConversationCallbacks,
    ConversationMessage,
    ConversationOrchestrator,
    ConversationState,
    EntryMode,
    VoiceStatus,
)
from stayhard_assistant.assistant.policy import (
    ActivitySample,
    InterventionAction,
    InterventionDecision,
    InterventionPolicy,
)

__all__ = [
    "ActivitySample",
    "ConversationCallbacks",
    "ConversationMessage",
    "ConversationOrchestrator",
    "ConversationState",
    "EntryMode",
    "InterventionAction",
    "InterventionDecision",
    "InterventionPolicy",
    "VoiceStatus",
]

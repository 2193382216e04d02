"""
STT backend registry for discovery and instantiation.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stayhard_assistant.stt.base import STTBackend

# Registry of available backends
_stt_backends: dict[str, type["STTBackend"]] = {}


def register_stt_backend(name: str):
    """
    Decorator to register an STT backend.

    Args:
        name: Backend name (e.g., "whisper", "remote")

    Example:
        @register_stt_backend("whisper")
        class WhisperBackend(STTBackend):
            ...
    """

    def decorator(cls: type["STTBackend"]) -> type["STTBackend"]:
        cls.name = name
        _stt_backends[name] = cls
        return cls

    return decorator


def get_stt_backend(name: str) -> "STTBackend":
    """
    Get an STT backend instance by name.

    Raises:
        ValueError: If backend not found
    """
    _discover_backends()

    if name not in _stt_backends:
        available = ", ".join(_stt_backends.keys())
        raise ValueError(f"STT backend '{name}' not found. Available: {available}")

    return _stt_backends[name]()


def list_stt_backends() -> list[dict]:
    """List all registered STT backends."""
    _discover_backends()

    return [{"name": name, "class": cls.__name__} for name, cls in _stt_backends.items()]


def _discover_backends() -> None:
    """Import backend modules so they self-register via the decorator."""
    # faster-whisper (local, in-process)
    try:
        from stayhard_assistant.stt import whisper  # noqa: F401
    except ImportError:
        pass

    # OpenAI-compatible /audio/transcriptions server
    try:
        from stayhard_assistant.stt import remote  # noqa: F401
    except ImportError:
        pass

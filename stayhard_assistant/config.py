"""
Configuration and settings for Stay Hard Assistant.
"""

import os
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


def get_default_cache_dir() -> Path:
    """Get the default model / audio cache directory."""
    return Path(os.environ.get("STAYHARD_CACHE_DIR", Path.home() / ".cache" / "stayhard-assistant"))


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, default))


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, default))


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class AudioSettings(BaseModel):
    """Microphone capture configuration."""

    sample_rate: int = Field(default=16000)
    channels: int = Field(default=1)
    chunk_duration_ms: int = Field(default=100)
    input_device: Optional[int] = Field(default=None)
    output_device: Optional[int] = Field(default=None)


class TranscriberSettings(BaseModel):
    """Incremental transcription and silence-commit configuration."""

    backend: str = Field(
        default_factory=lambda: os.environ.get("STAYHARD_STT_BACKEND", "whisper")
    )
    model_size: str = Field(
        default_factory=lambda: os.environ.get("STAYHARD_STT_MODEL", "base.en")
    )
    device: str = Field(default="auto")
    host: Optional[str] = Field(
        default_factory=lambda: os.environ.get("STAYHARD_STT_HOST")
    )  # Server URL for the "remote" backend
    language: Optional[str] = Field(default="en")

    process_interval_s: float = Field(default=3.5)  # Run STT over the buffer this often
    min_audio_s: float = Field(default=3.0)  # Minimum window before running STT
    overlap_s: float = Field(default=1.0)  # Audio kept for the next window
    max_buffer_s: float = Field(default=15.0)  # Intake cap, oldest audio dropped
    silence_peak: float = Field(default=0.005)  # Windows quieter than this are skipped

    check_interval_s: float = Field(default=0.5)
    silence_threshold_s: float = Field(
        default_factory=lambda: _env_float("STAYHARD_SILENCE_THRESHOLD", 1.5)
    )


class ConversationSettings(BaseModel):
    """Conversation state machine configuration."""

    enabled: bool = Field(
        default_factory=lambda: _env_bool("STAYHARD_VOICE_LISTENING", True)
    )
    wake_phrase: str = Field(
        default_factory=lambda: os.environ.get("STAYHARD_WAKE_PHRASE", "hey goggins")
    )
    max_exchanges: int = Field(
        default_factory=lambda: _env_int("STAYHARD_MAX_EXCHANGES", 3)
    )
    response_timeout_s: float = Field(
        default_factory=lambda: _env_float("STAYHARD_RESPONSE_TIMEOUT", 30.0)
    )
    timeout_grace_s: float = Field(default=2.0)  # Absorbs transcripts already in flight
    min_transcript_chars: int = Field(default=3)  # Shorter transcripts are treated as noise
    no_speech_sentinel: str = Field(default="[BLANK_AUDIO]")
    auto_detect_enabled: bool = Field(
        default_factory=lambda: _env_bool("STAYHARD_AUTO_DETECT", True)
    )
    listen_on_start: bool = Field(default=True)

    # Barge-in while a reply is being generated
    barge_in_frames: int = Field(default=3)
    vad_energy_threshold: float = Field(default=500.0)


class PolicySettings(BaseModel):
    """Intervention policy configuration (all durations in seconds)."""

    intervention_threshold: float = Field(
        default_factory=lambda: _env_float("STAYHARD_INTERVENTION_THRESHOLD", 5.0)
    )
    high_priority_score: float = Field(default=7.0)
    natural_pause_s: float = Field(
        default_factory=lambda: _env_float("STAYHARD_NATURAL_PAUSE", 60.0)
    )
    proactive_trigger_s: float = Field(default=120.0)
    proactive_cooldown_min_s: float = Field(default=120.0)
    proactive_cooldown_max_s: float = Field(default=300.0)
    escalation_steps_s: tuple[float, float] = Field(default=(300.0, 600.0))
    check_in_min_s: float = Field(default=900.0)
    check_in_max_s: float = Field(default=1800.0)
    activity_window_s: float = Field(default=60.0)
    max_activity_entries: int = Field(default=15)


class LLMSettings(BaseModel):
    """Response generation configuration."""

    backend: Literal["ollama", "openai", "simple"] = Field(
        default_factory=lambda: os.environ.get("STAYHARD_LLM_BACKEND", "ollama")
    )
    model: Optional[str] = Field(
        default_factory=lambda: os.environ.get("STAYHARD_LLM_MODEL")
    )
    host: Optional[str] = Field(
        default_factory=lambda: os.environ.get("STAYHARD_LLM_HOST")
    )
    api_key: Optional[str] = Field(
        default_factory=lambda: os.environ.get("OPENAI_API_KEY")
    )
    max_tokens: int = Field(default=150)
    temperature: float = Field(default=0.8)
    history_turns: int = Field(default=6)


class TTSSettings(BaseModel):
    """Speech synthesis configuration."""

    enabled: bool = Field(
        default_factory=lambda: _env_bool("STAYHARD_ENABLE_TTS", True)
    )
    backend: str = Field(default="piper")
    voice: str = Field(
        default_factory=lambda: os.environ.get("STAYHARD_TTS_VOICE", "en_US-lessac-medium")
    )
    model_path: Optional[str] = Field(default=None)
    output_dir: Path = Field(default_factory=lambda: get_default_cache_dir() / "speech")
    cache_entries: int = Field(default=32)


class CoachConfig(BaseModel):
    """Main configuration."""

    audio: AudioSettings = Field(default_factory=AudioSettings)
    transcriber: TranscriberSettings = Field(default_factory=TranscriberSettings)
    conversation: ConversationSettings = Field(default_factory=ConversationSettings)
    policy: PolicySettings = Field(default_factory=PolicySettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    tts: TTSSettings = Field(default_factory=TTSSettings)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "CoachConfig":
        """Build a config from a nested dict, ignoring unknown sections and keys."""
        data: dict[str, Any] = {}
        for section, model in cls.model_fields.items():
            values = raw.get(section)
            if not isinstance(values, dict):
                continue
            known = model.annotation.model_fields
            data[section] = {k: v for k, v in values.items() if k in known}
        return cls.model_validate(data)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "CoachConfig":
        """Load config values from a YAML file.

        Top-level keys are section names (``conversation``, ``policy``, ...).
        Unknown sections and keys are silently ignored.
        """
        import yaml

        yaml_path = Path(path).expanduser()
        with open(yaml_path) as f:
            raw = yaml.safe_load(f) or {}

        return cls.from_dict(raw)


def load_config(path: str | Path | None = None) -> CoachConfig:
    """Load configuration from ``path`` or return defaults."""
    if path is None:
        return CoachConfig()
    return CoachConfig.from_yaml(path)

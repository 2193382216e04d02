"""Tests for the speaker (TTS to WAV files)."""

import asyncio
from unittest.mock import MagicMock

import numpy as np
from scipy.io import wavfile

from stayhard_assistant.assistant.speaker import Speaker
from stayhard_assistant.assistant.tts_cache import TTSCache
from stayhard_assistant.config import TTSSettings
from stayhard_assistant.tts.base import SynthesisResult


def _backend(seconds=0.5, rate=22050):
    backend = MagicMock()
    backend.is_loaded.return_value = True
    backend.synthesize.return_value = SynthesisResult(
        audio=np.full(int(seconds * rate), 1000, dtype=np.int16),
        sample_rate=rate,
    )
    return backend


def test_writes_wav(tmp_path):
    speaker = Speaker(_backend(), tmp_path, voice="lessac")
    path = asyncio.run(speaker.synthesize("Stay hard."))

    assert path is not None
    assert path.parent == tmp_path
    rate, audio = wavfile.read(path)
    assert rate == 22050
    assert len(audio) == 11025


def test_repeated_short_line_uses_cache(tmp_path):
    backend = _backend()
    speaker = Speaker(backend, tmp_path, voice="lessac")

    first = asyncio.run(speaker.synthesize("Get back to work."))
    second = asyncio.run(speaker.synthesize("Get back to work."))

    assert first == second
    assert backend.synthesize.call_count == 1


def test_uncached_clips_are_rotated(tmp_path):
    speaker = Speaker(_backend(), tmp_path, cache=TTSCache(max_text_len=5))
    paths = [asyncio.run(speaker.synthesize(f"long reply number {i}")) for i in range(6)]

    assert not paths[0].exists()
    assert not paths[1].exists()
    assert all(p.exists() for p in paths[2:])


def test_no_backend_is_text_only(tmp_path):
    speaker = Speaker(None, tmp_path)
    assert not speaker.available
    assert asyncio.run(speaker.synthesize("Stay hard.")) is None


def test_backend_failure_returns_none(tmp_path):
    backend = _backend()
    backend.synthesize.side_effect = RuntimeError("onnx exploded")
    speaker = Speaker(backend, tmp_path)
    assert asyncio.run(speaker.synthesize("Stay hard.")) is None


def test_empty_audio_returns_none(tmp_path):
    backend = _backend(seconds=0)
    speaker = Speaker(backend, tmp_path)
    assert asyncio.run(speaker.synthesize("Stay hard.")) is None


def test_blank_text_skipped(tmp_path):
    backend = _backend()
    speaker = Speaker(backend, tmp_path)
    assert asyncio.run(speaker.synthesize("   ")) is None
    backend.synthesize.assert_not_called()


def test_from_settings_disabled(tmp_path):
    speaker = Speaker.from_settings(TTSSettings(enabled=False, output_dir=tmp_path))
    assert speaker.backend is None
    assert speaker.output_dir == tmp_path


def test_from_settings_falls_back_when_load_fails(tmp_path, monkeypatch):
    backend = MagicMock()
    backend.load.side_effect = ImportError("piper-tts not installed")
    monkeypatch.setattr("stayhard_assistant.tts.get_tts_backend", lambda name: backend)

    speaker = Speaker.from_settings(TTSSettings(enabled=True, output_dir=tmp_path))
    assert speaker.backend is None

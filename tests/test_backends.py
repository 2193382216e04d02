"""
Tests for STT and TTS backend registries and base classes.
"""

from unittest.mock import MagicMock

import numpy as np
import pytest

from stayhard_assistant.stt.base import STTBackend, TranscriptionResult
from stayhard_assistant.stt.registry import get_stt_backend, list_stt_backends, register_stt_backend
from stayhard_assistant.tts.base import SynthesisResult, Voice
from stayhard_assistant.tts.registry import get_tts_backend, list_tts_backends


class TestSTTRegistry:
    """Test STT backend registry."""

    def test_list_backends(self):
        names = [b["name"] for b in list_stt_backends()]
        assert "whisper" in names
        assert "remote" in names

    def test_get_unknown_backend(self):
        with pytest.raises(ValueError, match="not found"):
            get_stt_backend("nonexistent")

    def test_register_custom_backend(self):
        @register_stt_backend("echo-test")
        class EchoBackend(STTBackend):
            def load(self, model_size: str = "base", **kwargs) -> None:
                self._loaded = True

            def transcribe(self, audio, sample_rate, language=None, **kwargs):
                return TranscriptionResult(text="echo", duration=len(audio) / sample_rate)

        backend = get_stt_backend("echo-test")
        assert isinstance(backend, EchoBackend)
        assert backend.name == "echo-test"
        assert not backend.is_loaded()

        backend.load()
        info = backend.get_info()
        assert info["loaded"]
        assert backend.transcribe(np.zeros(16000, dtype=np.int16), 16000).duration == 1.0

    def test_whisper_not_loaded(self):
        backend = get_stt_backend("whisper")
        assert not backend.is_loaded()


class TestRemoteWhisper:
    def _backend(self, payload):
        backend = get_stt_backend("remote")
        response = MagicMock()
        response.json.return_value = payload
        backend._client = MagicMock()
        backend._client.post.return_value = response
        backend._host = "http://stt.local/v1"
        backend._loaded = True
        return backend

    def test_posts_wav(self):
        backend = self._backend({"text": " Working on it. "})
        result = backend.transcribe(np.zeros(8000, dtype=np.int16), 16000, language="en")

        assert result.text == "Working on it."
        assert result.duration == 0.5
        assert len(result.segments) == 1

        url = backend._client.post.call_args.args[0]
        kwargs = backend._client.post.call_args.kwargs
        assert url == "http://stt.local/v1/audio/transcriptions"
        assert kwargs["data"]["language"] == "en"
        assert kwargs["files"]["file"][1][:4] == b"RIFF"

    def test_empty_text(self):
        backend = self._backend({"text": ""})
        result = backend.transcribe(np.zeros(8000, dtype=np.int16), 16000)
        assert result.text == ""
        assert result.segments == []

    def test_requires_load(self):
        backend = get_stt_backend("remote")
        with pytest.raises(RuntimeError):
            backend.transcribe(np.zeros(10, dtype=np.int16), 16000)


class TestTTS:
    def test_list_backends(self):
        assert "piper" in [b["name"] for b in list_tts_backends()]

    def test_get_unknown_backend(self):
        with pytest.raises(ValueError, match="not found"):
            get_tts_backend("nonexistent")

    def test_piper_voices(self):
        backend = get_tts_backend("piper")
        voices = backend.get_voices()
        assert "en_US-lessac-medium" in [v.id for v in voices]
        assert backend.get_info()["voices"] == len(voices)

    def test_voice_to_dict(self):
        voice = Voice(id="en_US-ryan-high", name="Ryan", language="en-US", gender="male")
        assert voice.to_dict()["gender"] == "male"

    def test_synthesis_duration(self):
        result = SynthesisResult(audio=np.zeros(22050, dtype=np.int16), sample_rate=22050)
        assert result.duration == 1.0

    def test_synthesis_save(self, tmp_path):
        result = SynthesisResult(audio=np.zeros(2205, dtype=np.int16), sample_rate=22050)
        path = tmp_path / "out.wav"
        result.save(str(path))
        assert path.read_bytes()[:4] == b"RIFF"

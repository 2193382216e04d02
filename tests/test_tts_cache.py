"""Tests for the synthesized clip cache with LRU eviction."""

from stayhard_assistant.assistant.tts_cache import TTSCache


def _clip(tmp_path, name):
    path = tmp_path / f"{name}.wav"
    path.write_bytes(b"RIFF")
    return path


def test_cache_miss_returns_none():
    cache = TTSCache(max_entries=10)
    assert cache.get("stay hard", "lessac") is None


def test_cache_hit_returns_clip(tmp_path):
    cache = TTSCache(max_entries=10)
    path = _clip(tmp_path, "one")
    assert cache.put("Stay hard.", "lessac", path, 1.2)

    clip = cache.get("Stay hard.", "lessac")
    assert clip is not None
    assert clip.path == path
    assert clip.duration == 1.2


def test_key_ignores_case_and_whitespace(tmp_path):
    cache = TTSCache(max_entries=10)
    cache.put("Stay hard.", "lessac", _clip(tmp_path, "one"), 1.0)
    assert cache.get("  stay HARD. ", "lessac") is not None


def test_cache_evicts_oldest_and_deletes_file(tmp_path):
    cache = TTSCache(max_entries=2)
    one, two, three = (_clip(tmp_path, n) for n in ("one", "two", "three"))
    cache.put("one", "v", one, 1.0)
    cache.put("two", "v", two, 1.0)
    cache.put("three", "v", three, 1.0)  # evicts "one"

    assert cache.get("one", "v") is None
    assert not one.exists()
    assert cache.get("two", "v") is not None
    assert len(cache) == 2


def test_cache_skips_long_text(tmp_path):
    cache = TTSCache(max_entries=10, max_text_len=50)
    long_text = "x" * 100
    assert not cache.put(long_text, "v", _clip(tmp_path, "long"), 5.0)
    assert cache.get(long_text, "v") is None
    assert len(cache) == 0


def test_cache_lru_order_on_get(tmp_path):
    """Accessing an entry should refresh it so it is not evicted next."""
    cache = TTSCache(max_entries=2)
    cache.put("one", "v", _clip(tmp_path, "one"), 1.0)
    cache.put("two", "v", _clip(tmp_path, "two"), 1.0)
    cache.get("one", "v")
    cache.put("three", "v", _clip(tmp_path, "three"), 1.0)

    assert cache.get("one", "v") is not None
    assert cache.get("two", "v") is None


def test_cache_different_voices_are_separate(tmp_path):
    cache = TTSCache(max_entries=10)
    cache.put("hello", "lessac", _clip(tmp_path, "a"), 1.0)
    cache.put("hello", "ryan", _clip(tmp_path, "b"), 2.0)

    assert cache.get("hello", "lessac").duration == 1.0
    assert cache.get("hello", "ryan").duration == 2.0


def test_deleted_file_is_a_miss(tmp_path):
    cache = TTSCache(max_entries=10)
    path = _clip(tmp_path, "gone")
    cache.put("gone", "v", path, 1.0)
    path.unlink()

    assert cache.get("gone", "v") is None
    assert len(cache) == 0

"""Tests for adaptive conversation memory."""

from stayhard_assistant.assistant.memory import ConversationMemory, UserMood
from stayhard_assistant.assistant.policy import ActivitySample


def _activities(*categories):
    return [
        ActivitySample(timestamp=float(i), description=f"{category} thing", category=category)
        for i, category in enumerate(categories)
    ]


def test_initial_snapshot():
    memory = ConversationMemory(clock=lambda: 50.0)
    snap = memory.snapshot()
    assert snap.mood is UserMood.DISTRACTED
    assert snap.total_exchanges == 0
    assert snap.session_start == 50.0
    assert not snap.user_has_shared_goal


def test_task_from_user_message():
    memory = ConversationMemory()
    memory.update_from_user_message("I'm working on the quarterly report")
    snap = memory.snapshot()
    assert snap.mood is UserMood.GRINDING
    assert snap.user_has_shared_goal
    assert snap.current_task == "I'm working on the quarterly report"
    assert snap.total_exchanges == 1


def test_goal_and_deadline():
    memory = ConversationMemory()
    memory.update_from_user_message("My goal is to finish the API by 5pm.")
    snap = memory.snapshot()
    assert snap.current_goal == "finish the API by 5pm"
    assert snap.deadline == "by 5pm"


def test_defeated_mood():
    memory = ConversationMemory()
    memory.update_from_user_message("I can't do this, it's too hard")
    assert memory.snapshot().mood is UserMood.DEFEATED


def test_screen_contradicts_claim():
    memory = ConversationMemory()
    memory.update_from_user_message("I'm working on it", _activities("entertainment", "social", "entertainment"))
    snap = memory.snapshot()
    assert snap.mood is UserMood.MAKING_EXCUSES
    assert snap.recent_topic == "entertainment thing"


def test_screen_shows_work():
    memory = ConversationMemory()
    memory.update_from_user_message("hmm", _activities("work", "study", "work"))
    assert memory.snapshot().mood is UserMood.GRINDING


def test_assistant_message_truncated():
    memory = ConversationMemory()
    memory.update_from_assistant_message("x" * 400)
    assert len(memory.snapshot().last_assistant_message) == 150


def test_snapshot_is_a_copy():
    memory = ConversationMemory()
    snap = memory.snapshot()
    snap.total_exchanges = 99
    assert memory.snapshot().total_exchanges == 0


def test_reset_and_session_minutes():
    now = [0.0]
    memory = ConversationMemory(clock=lambda: now[0])
    memory.update_from_user_message("I'm working on slides")

    now[0] = 125.0
    assert memory.session_minutes() == 2

    memory.reset()
    snap = memory.snapshot()
    assert snap.total_exchanges == 0
    assert snap.current_task is None
    assert snap.session_start == 125.0

"""Tests for the intervention policy."""

import random

import pytest

from stayhard_assistant.assistant.policy import (
    ActivitySample,
    ActivityWindow,
    InterventionAction,
    InterventionPolicy,
)
from stayhard_assistant.assistant.timing import ManualScheduler
from stayhard_assistant.config import PolicySettings


def _sample(clock, app, description="Watching something"):
    return ActivitySample(timestamp=clock.now(), description=description, category="entertainment", app_hint=app)


def _policy(**overrides):
    values = dict(
        intervention_threshold=5.0,
        high_priority_score=7.0,
        natural_pause_s=60.0,
        proactive_trigger_s=120.0,
        check_in_min_s=900.0,
        check_in_max_s=1800.0,
    )
    values.update(overrides)
    clock = ManualScheduler()
    policy = InterventionPolicy(PolicySettings(**values), clock=clock, rng=random.Random(7))
    return policy, clock


class TestActivitySample:
    def test_dedup_key_prefers_app(self):
        sample = ActivitySample(timestamp=0.0, description="Cat videos", app_hint="YouTube")
        assert sample.dedup_key == "YouTube"

    def test_dedup_key_falls_back_to_description(self):
        sample = ActivitySample(timestamp=0.0, description="Cat videos")
        assert sample.dedup_key == "Cat videos"


class TestActivityWindow:
    def test_bounded(self):
        window = ActivityWindow(max_entries=2)
        for i in range(3):
            window.add(ActivitySample(timestamp=float(i), description=f"thing {i}"))
        assert len(window) == 2
        assert window.latest().description == "thing 2"

    def test_recent(self):
        clock = ManualScheduler()
        window = ActivityWindow(clock=clock)
        window.add(_sample(clock, "Slack"))
        clock.advance(90)
        window.add(_sample(clock, "Docs"))

        assert [s.app_hint for s in window.recent(60)] == ["Docs"]
        assert len(window.recent(120)) == 2

        window.clear()
        assert window.latest() is None


class TestCallouts:
    def test_same_distraction_called_out_once(self):
        policy, clock = _policy()
        actions = []
        for app in ["YouTube", "YouTube", "Docs", "YouTube"]:
            actions.append(policy.evaluate(8.0, _sample(clock, app)).action)
            clock.advance(10)

        assert actions == [
            InterventionAction.CALLOUT,
            InterventionAction.DUPLICATE,
            InterventionAction.CALLOUT,
            InterventionAction.CALLOUT,
        ]

    def test_recovery_clears_dedup(self):
        policy, clock = _policy()
        assert policy.evaluate(8.0, _sample(clock, "YouTube")).action is InterventionAction.CALLOUT

        clock.advance(61)
        decision = policy.evaluate(2.0, _sample(clock, "VS Code"))
        assert decision.action is InterventionAction.NONE
        assert policy.last_called_out is None

        clock.advance(10)
        assert policy.evaluate(8.0, _sample(clock, "YouTube")).action is InterventionAction.CALLOUT

    def test_only_callout_opens_listen_window(self):
        policy, clock = _policy()
        decision = policy.evaluate(8.0, _sample(clock, "Reddit"))
        assert decision.auto_listen
        assert decision.key == "Reddit"
        assert decision.should_speak

        clock.advance(10)
        decision = policy.evaluate(8.0, _sample(clock, "Reddit"))
        assert not decision.auto_listen
        assert not decision.should_speak

    def test_held_callout_does_not_arm_dedup(self):
        policy, clock = _policy()
        decision = policy.evaluate(9.0, _sample(clock, "Twitch"), conversing=True)
        assert decision.action is InterventionAction.HELD
        assert not decision.should_speak
        assert not decision.auto_listen
        assert policy.last_called_out is None

        clock.advance(10)
        assert policy.evaluate(9.0, _sample(clock, "Twitch")).action is InterventionAction.CALLOUT

    def test_uncommitted_callout_leaves_no_trace(self):
        policy, clock = _policy()
        assert policy.evaluate(6.0, _sample(clock, "YouTube"), commit=False).action is InterventionAction.CALLOUT
        assert policy.last_called_out is None

        # Never said, so neither dedup nor the natural pause applies
        clock.advance(10)
        decision = policy.evaluate(6.0, _sample(clock, "YouTube"), commit=False)
        assert decision.action is InterventionAction.CALLOUT

        policy.commit(decision)
        policy.record_message("assistant")
        assert policy.last_called_out == "YouTube"

        clock.advance(10)
        assert policy.evaluate(6.0, _sample(clock, "YouTube")).action is InterventionAction.PAUSED
        assert policy.evaluate(9.0, _sample(clock, "YouTube")).action is InterventionAction.DUPLICATE


class TestNaturalPause:
    def test_quiet_interval_after_message(self):
        policy, clock = _policy()
        assert policy.evaluate(6.0, _sample(clock, "YouTube")).action is InterventionAction.CALLOUT

        clock.advance(30)
        assert policy.evaluate(6.0, _sample(clock, "Reddit")).action is InterventionAction.PAUSED

        clock.advance(31)
        assert policy.evaluate(6.0, _sample(clock, "Reddit")).action is InterventionAction.CALLOUT

    def test_high_priority_bypasses_pause(self):
        policy, clock = _policy()
        policy.record_message("user")
        clock.advance(5)
        assert policy.evaluate(9.0, _sample(clock, "Twitch")).action is InterventionAction.CALLOUT

    def test_user_message_counts_as_activity(self):
        policy, clock = _policy()
        clock.advance(100)
        policy.record_message("user")
        clock.advance(10)
        assert policy.evaluate(6.0, _sample(clock, "YouTube")).action is InterventionAction.PAUSED

    def test_tracking_updates_while_paused(self):
        policy, clock = _policy()
        policy.record_message("user")
        policy.evaluate(6.0, _sample(clock, "YouTube"))
        clock.advance(30)
        assert policy.low_productivity_duration() == 30.0


class TestProactive:
    def test_nudge_after_sustained_distraction(self):
        policy, clock = _policy()
        assert policy.evaluate(6.0, _sample(clock, "YouTube")).action is InterventionAction.CALLOUT

        clock.advance(120)
        # Trigger duration reached but the cooldown since the callout has not
        assert policy.evaluate(6.0, _sample(clock, "YouTube")).action is InterventionAction.DUPLICATE

        clock.advance(180)
        decision = policy.evaluate(6.0, _sample(clock, "YouTube"))
        assert decision.action is InterventionAction.PROACTIVE
        assert decision.escalation_level == 1
        assert not decision.auto_listen

    def test_escalation_shrinks_cooldown(self):
        policy, clock = _policy()
        policy.evaluate(6.0, _sample(clock, "YouTube"))
        assert policy.escalation_level == 0
        assert policy.proactive_cooldown() == 300.0

        clock.advance(300)
        policy.evaluate(6.0, _sample(clock, "YouTube"))
        assert policy.escalation_level == 1
        assert policy.proactive_cooldown() == 210.0

        clock.advance(300)
        policy.evaluate(6.0, _sample(clock, "YouTube"))
        assert policy.escalation_level == 2
        assert policy.proactive_cooldown() == 120.0

    def test_recovery_resets_escalation(self):
        policy, clock = _policy()
        policy.evaluate(6.0, _sample(clock, "YouTube"))
        clock.advance(600)
        policy.evaluate(6.0, _sample(clock, "YouTube"))
        assert policy.escalation_level == 2

        clock.advance(60)
        policy.evaluate(5.0, _sample(clock, "VS Code"))
        assert policy.escalation_level == 0
        assert policy.low_productivity_duration() == 0.0


class TestCheckIn:
    def test_not_on_first_sample(self):
        policy, clock = _policy(check_in_min_s=100.0, check_in_max_s=100.0, proactive_trigger_s=10_000.0)
        assert policy.evaluate(6.0, _sample(clock, "YouTube")).action is InterventionAction.CALLOUT

    def test_periodic_check_in(self):
        policy, clock = _policy(check_in_min_s=100.0, check_in_max_s=100.0, proactive_trigger_s=10_000.0)
        policy.evaluate(6.0, _sample(clock, "YouTube"))

        clock.advance(100)
        decision = policy.evaluate(6.0, _sample(clock, "YouTube"))
        assert decision.action is InterventionAction.CHECK_IN
        assert not decision.auto_listen

    def test_held_while_conversing(self):
        policy, clock = _policy(check_in_min_s=100.0, check_in_max_s=100.0, proactive_trigger_s=10_000.0)
        policy.evaluate(6.0, _sample(clock, "YouTube"))

        clock.advance(100)
        assert policy.evaluate(6.0, _sample(clock, "YouTube"), conversing=True).action is InterventionAction.HELD
        assert policy.evaluate(6.0, _sample(clock, "YouTube")).action is InterventionAction.CHECK_IN

    def test_timer_restarts_only_when_committed(self):
        policy, clock = _policy(check_in_min_s=100.0, check_in_max_s=100.0, proactive_trigger_s=10_000.0)
        policy.evaluate(6.0, _sample(clock, "YouTube"))

        clock.advance(100)
        decision = policy.evaluate(9.0, _sample(clock, "YouTube"), commit=False)
        assert decision.action is InterventionAction.CHECK_IN
        assert policy.evaluate(9.0, _sample(clock, "YouTube"), commit=False).action is InterventionAction.CHECK_IN

        policy.commit(decision)
        assert policy.evaluate(9.0, _sample(clock, "YouTube")).action is InterventionAction.DUPLICATE

    @pytest.mark.parametrize("seed", [0, 1, 2])
    def test_interval_within_bounds(self, seed):
        clock = ManualScheduler()
        policy = InterventionPolicy(
            PolicySettings(check_in_min_s=900.0, check_in_max_s=1800.0),
            clock=clock,
            rng=random.Random(seed),
        )
        assert 900.0 <= policy._next_check_in <= 1800.0

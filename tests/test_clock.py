"""
Incident clock tests. Most run on virtual time through the ``scheduler``
fixture, which replaces threading.Timer.
"""
import random
import time

import pytest

from incident_sim.catalog import INCIDENT_KINDS, IncidentKind
from incident_sim.clock import RESOLVED, STARTED, IncidentClock
from incident_sim.state import IncidentState

PERIOD = 45.0
WINDOW = 600.0


def _make_clock(scheduler, rng, **kw):
    state = IncidentState()
    clock = IncidentClock(state, period=PERIOD, start_probability=kw.pop("p", 0.25),
                          min_duration=15, max_duration=90,
                          rng=rng, timer_factory=scheduler.timer, **kw)
    return state, clock


def _run_window(scheduler, clock, window=WINDOW):
    """Drive the clock tick by tick over ``window`` virtual seconds and return
    the (event, time, snapshot) transitions, resolving anything left pending."""
    events = []
    clock.add_listener(lambda event, snap: events.append((event, scheduler.now, snap)))
    t = PERIOD
    while t <= window:
        scheduler.advance_to(t)
        clock.tick()
        t += PERIOD
    scheduler.drain()
    return events


class TestTick:
    def test_roll_below_probability_starts_incident(self, scheduler, fixed_random):
        state, clock = _make_clock(scheduler, fixed_random(0.1))
        started = clock.tick()
        assert started is not None
        assert state.snapshot() == started
        assert started.kind in INCIDENT_KINDS
        assert clock.expiry_pending

    def test_roll_above_probability_does_nothing(self, scheduler, fixed_random):
        state, clock = _make_clock(scheduler, fixed_random(0.5))
        assert clock.tick() is None
        assert not state.active
        assert not clock.expiry_pending

    def test_active_incident_is_not_extended(self, scheduler, fixed_random):
        state, clock = _make_clock(scheduler, fixed_random(0.0))
        first = clock.tick()
        assert clock.tick() is None
        assert state.snapshot() == first

    def test_expiry_resets_state(self, scheduler, fixed_random):
        state, clock = _make_clock(scheduler, fixed_random(0.0))
        clock.tick()
        scheduler.drain()
        assert not state.active
        assert state.kind == IncidentKind.NONE
        assert not clock.expiry_pending

    def test_duration_uses_configured_range(self, scheduler, fixed_random):
        _, clock = _make_clock(scheduler, fixed_random(0.0))
        clock.tick()
        scheduler.drain()
        assert scheduler.now == pytest.approx(15.0)

        _, clock = _make_clock(scheduler, fixed_random(0.2))
        start = scheduler.now
        clock.tick()
        scheduler.drain()
        assert scheduler.now - start == pytest.approx(15 + 0.2 * 75)

    def test_listener_failure_does_not_break_tick(self, scheduler, fixed_random):
        state, clock = _make_clock(scheduler, fixed_random(0.0))

        def boom(event, snap):
            raise RuntimeError("listener down")

        clock.add_listener(boom)
        assert clock.tick() is not None
        assert state.active

    def test_kind_choice_is_uniform(self, scheduler):
        counts = dict.fromkeys(INCIDENT_KINDS, 0)
        rng = random.Random(99)
        for _ in range(2500):
            state, clock = _make_clock(scheduler, rng, p=1.0)
            counts[clock.tick().kind] += 1
        for n in counts.values():
            assert n == pytest.approx(500, abs=100)

    def test_rejects_inverted_duration_range(self):
        with pytest.raises(ValueError):
            IncidentClock(IncidentState(), min_duration=90, max_duration=15)


class TestTenMinuteWindow:
    @pytest.mark.parametrize("seed", range(20))
    def test_episodes_never_overlap(self, scheduler, seed):
        state, clock = _make_clock(scheduler, random.Random(seed))
        events = _run_window(scheduler, clock)

        open_episode = None
        for event, _, snap in events:
            if event == STARTED:
                assert open_episode is None
                open_episode = snap
            else:
                assert event == RESOLVED
                assert snap == open_episode
                open_episode = None
        assert open_episode is None
        assert not state.active

    @pytest.mark.parametrize("seed", range(20))
    def test_episode_durations_within_range(self, scheduler, seed):
        _, clock = _make_clock(scheduler, random.Random(seed))
        events = _run_window(scheduler, clock)

        starts = {snap.episode: t for event, t, snap in events if event == STARTED}
        ends = {snap.episode: t for event, t, snap in events if event == RESOLVED}
        assert starts.keys() == ends.keys()
        for episode, started_at in starts.items():
            assert 15 <= ends[episode] - started_at < 90

    def test_window_produces_incidents(self, scheduler):
        total = 0
        for seed in range(20):
            _, clock = _make_clock(scheduler, random.Random(seed))
            total += sum(1 for e, _, _ in _run_window(scheduler, clock) if e == STARTED)
        assert total > 0


class TestLifecycle:
    def test_stop_cancels_pending_expiry(self, scheduler, fixed_random):
        state, clock = _make_clock(scheduler, fixed_random(0.0))
        clock.tick()
        timer = scheduler._queue[0][2]
        clock.stop()
        assert timer.cancelled
        assert not clock.expiry_pending
        scheduler.drain()
        assert state.active

    def test_background_thread_starts_and_stops(self):
        state = IncidentState()
        clock = IncidentClock(state, period=0.01, start_probability=1.0,
                              min_duration=0.05, max_duration=0.1)
        clock.start()
        clock.start()
        try:
            deadline = time.time() + 2
            while not state.active and time.time() < deadline:
                time.sleep(0.005)
            assert state.active
            assert clock.running
        finally:
            clock.stop()
        assert not clock.running
        assert not clock.expiry_pending

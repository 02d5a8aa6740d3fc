"""Shared fixtures: controllable randomness, virtual timers, in-memory metrics."""

import heapq
import itertools
import random

import pytest
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader


class FixedRandom(random.Random):
    """Random whose every draw returns the same value in [0, 1)."""

    def __init__(self, value: float):
        self.value = value
        super().__init__(0)

    def random(self):
        return self.value


class VirtualScheduler:
    """Stands in for threading.Timer; fires callbacks only when advanced."""

    def __init__(self):
        self.now = 0.0
        self._queue = []
        self._seq = itertools.count()

    def timer(self, interval, function, args=()):
        return _VirtualTimer(self, interval, function, args)

    def _push(self, t):
        heapq.heappush(self._queue, (self.now + t.interval, next(self._seq), t))

    def advance_to(self, when: float):
        while self._queue and self._queue[0][0] <= when:
            due, _, t = heapq.heappop(self._queue)
            self.now = due
            if not t.cancelled:
                t.function(*t.args)
        self.now = when

    def drain(self):
        while self._queue:
            self.advance_to(self._queue[0][0])


class _VirtualTimer:
    def __init__(self, scheduler, interval, function, args):
        self.scheduler = scheduler
        self.interval = interval
        self.function = function
        self.args = args
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True
        self.scheduler._push(self)

    def cancel(self):
        self.cancelled = True


def collect_points(reader: InMemoryMetricReader) -> dict:
    """Flatten reader output into {metric name: [data points]}."""
    points = {}
    data = reader.get_metrics_data()
    if data is None:
        return points
    for rm in data.resource_metrics:
        for sm in rm.scope_metrics:
            for m in sm.metrics:
                points.setdefault(m.name, []).extend(m.data.data_points)
    return points


@pytest.fixture
def fixed_random():
    return FixedRandom


@pytest.fixture
def scheduler():
    return VirtualScheduler()


@pytest.fixture
def no_sleep():
    slept = []
    return slept.append


@pytest.fixture
def metric_reader():
    return InMemoryMetricReader()


@pytest.fixture
def meter(metric_reader):
    provider = MeterProvider(metric_readers=[metric_reader])
    yield provider.get_meter("incident-sim-tests")
    provider.shutdown()


@pytest.fixture
def read_points(metric_reader):
    return lambda: collect_points(metric_reader)

"""Shared stubs for dockershocker tests."""

import pytest

from dockershocker.ledger import ActivityLedger
from dockershocker.models import ManagedContainer

ENABLED_LABEL = "dockershocker.enabled"
TIMEOUT_LABEL = "dockershocker.timeout_minutes"


class FakeClock:
    """Monotonic clock the test moves by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubRuntime:
    """Docker runtime exposing only what the core calls."""

    def __init__(self, containers=None):
        self.containers = list(containers or [])
        self.started = []
        self.stopped = []
        self.list_calls = []
        self.list_error = None
        self.start_error = None
        self.stop_errors = {}
        self.healthy = True
        self.closed = False

    def list_containers(self, include_stopped=False):
        self.list_calls.append(include_stopped)
        if self.list_error is not None:
            raise self.list_error
        if include_stopped:
            return list(self.containers)
        return [c for c in self.containers if c.is_running]

    def start_container(self, container_id):
        if self.start_error is not None:
            raise self.start_error
        self.started.append(container_id)

    def stop_container(self, container_id, grace_period_seconds=0):
        error = self.stop_errors.get(container_id)
        if error is not None:
            raise error
        self.stopped.append((container_id, grace_period_seconds))

    def ping(self):
        return self.healthy

    def close(self):
        self.closed = True


def make_container(
    container_id,
    aliases=(),
    state="running",
    enabled=True,
    timeout=None,
    labels=None,
):
    all_labels = dict(labels or {})
    if enabled:
        all_labels[ENABLED_LABEL] = "true"
    if timeout is not None:
        all_labels[TIMEOUT_LABEL] = str(timeout)
    return ManagedContainer(
        id=container_id,
        names=[f"{container_id}_container"],
        logical_names=set(aliases),
        labels=all_labels,
        run_state=state,
        status="Up 5 minutes" if state == "running" else "Exited (0)",
    )


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def ledger(clock):
    return ActivityLedger(monotonic=clock)


@pytest.fixture()
def runtime():
    return StubRuntime()

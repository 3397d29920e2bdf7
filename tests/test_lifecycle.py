"""Tests for the idle sweeper."""

import asyncio
import datetime

from dockershocker.exceptions import (
    ContainerNotFound,
    GatewayUnavailable,
    StopFailed,
)
from dockershocker.lifecycle import IdleSweeper

from conftest import ENABLED_LABEL, TIMEOUT_LABEL, make_container

MINUTE = 60


def _sweeper(runtime, ledger, **kwargs):
    return IdleSweeper(
        runtime,
        ledger,
        enabled_label=ENABLED_LABEL,
        timeout_label=TIMEOUT_LABEL,
        **kwargs,
    )


def test_idle_container_past_default_timeout_is_stopped(runtime, ledger, clock):
    """C: managed, no declared timeout, last accessed 20 minutes ago."""
    runtime.containers = [make_container("c")]
    ledger.record_access("c")
    clock.advance(20 * MINUTE)

    report = _sweeper(runtime, ledger).sweep_once()

    assert runtime.stopped == [("c", 0)]
    assert report.stopped == ["c"]
    assert ledger.get("c") is None


def test_container_within_declared_timeout_is_kept(runtime, ledger, clock):
    """D: declared 30 minutes, last accessed 20 minutes ago."""
    runtime.containers = [make_container("d", timeout=30)]
    record = ledger.record_access("d")
    clock.advance(20 * MINUTE)

    report = _sweeper(runtime, ledger).sweep_once()

    assert runtime.stopped == []
    assert report.evaluated == 1
    assert ledger.get("d") == record


def test_never_accessed_container_is_stopped(runtime, ledger):
    runtime.containers = [make_container("fresh")]
    _sweeper(runtime, ledger).sweep_once()
    assert runtime.stopped == [("fresh", 0)]


def test_exactly_at_timeout_is_not_stopped(runtime, ledger, clock):
    runtime.containers = [make_container("edge", timeout=5)]
    ledger.record_access("edge")
    clock.advance(5 * MINUTE)
    _sweeper(runtime, ledger).sweep_once()
    assert runtime.stopped == []


def test_unmanaged_containers_are_never_stopped(runtime, ledger):
    runtime.containers = [
        make_container("plain", enabled=False),
        make_container("off", enabled=False, labels={ENABLED_LABEL: "false"}),
    ]
    report = _sweeper(runtime, ledger).sweep_once()
    assert runtime.stopped == []
    assert report.evaluated == 0


def test_sweep_lists_running_containers_only(runtime, ledger):
    runtime.containers = [make_container("down", state="stopped")]
    _sweeper(runtime, ledger).sweep_once()
    assert runtime.list_calls == [False]
    assert runtime.stopped == []


def test_stop_failure_keeps_entry_and_continues(runtime, ledger, clock):
    runtime.containers = [make_container("bad"), make_container("good")]
    runtime.stop_errors["bad"] = StopFailed("permission denied")
    ledger.record_access("bad")
    ledger.record_access("good")
    clock.advance(16 * MINUTE)

    report = _sweeper(runtime, ledger).sweep_once()

    assert report.failed == ["bad"]
    assert report.stopped == ["good"]
    assert ledger.get("bad") is not None
    assert ledger.get("good") is None


def test_vanished_container_is_isolated_and_forgotten(runtime, ledger, clock):
    runtime.containers = [make_container("gone"), make_container("other")]
    runtime.stop_errors["gone"] = ContainerNotFound("no such container")
    ledger.record_access("gone")
    clock.advance(16 * MINUTE)

    report = _sweeper(runtime, ledger).sweep_once()

    assert report.failed == ["gone"]
    assert runtime.stopped == [("other", 0)]
    assert ledger.get("gone") is None


def test_access_during_stop_survives(runtime, ledger, clock):
    """A request recorded while the stop call is in flight is not forgotten."""
    runtime.containers = [make_container("busy")]
    ledger.record_access("busy")
    clock.advance(16 * MINUTE)

    original_stop = runtime.stop_container

    def _stop_with_concurrent_access(container_id, grace_period_seconds=0):
        clock.advance(1)
        ledger.record_access(container_id)
        original_stop(container_id, grace_period_seconds)

    runtime.stop_container = _stop_with_concurrent_access
    _sweeper(runtime, ledger).sweep_once()

    assert runtime.stopped == [("busy", 0)]
    assert ledger.seconds_since_access("busy") == 0


def test_custom_default_timeout(runtime, ledger, clock):
    runtime.containers = [make_container("quick")]
    ledger.record_access("quick")
    clock.advance(3 * MINUTE)
    _sweeper(
        runtime, ledger, default_timeout=datetime.timedelta(minutes=2)
    ).sweep_once()
    assert runtime.stopped == [("quick", 0)]


def _run_until(sweeper, condition, limit=5.0):
    """Run the sweeper loop until ``condition()`` holds, then stop it."""

    async def _main():
        stop = asyncio.Event()
        task = asyncio.create_task(sweeper.run(stop))
        waited = 0.0
        while not condition() and waited < limit:
            await asyncio.sleep(0.01)
            waited += 0.01
        stop.set()
        await asyncio.wait_for(task, timeout=limit)

    asyncio.run(_main())


def test_run_backs_off_after_list_failure(runtime, ledger):
    """A listing failure retries after the short backoff, not the full interval."""
    runtime.containers = [make_container("c")]
    runtime.list_error = GatewayUnavailable("connection refused")
    original_list = runtime.list_containers

    def _fail_once(include_stopped=False):
        try:
            return original_list(include_stopped)
        finally:
            runtime.list_error = None

    runtime.list_containers = _fail_once
    sweeper = _sweeper(runtime, ledger, interval=3600.0, backoff=0.01)

    _run_until(sweeper, lambda: runtime.stopped)

    assert len(runtime.list_calls) == 2
    assert runtime.stopped == [("c", 0)]


def test_run_survives_unexpected_errors(runtime, ledger):
    calls = []

    def _boom(include_stopped=False):
        calls.append(include_stopped)
        raise RuntimeError("unexpected")

    runtime.list_containers = _boom
    sweeper = _sweeper(runtime, ledger, interval=0.01)

    _run_until(sweeper, lambda: len(calls) >= 3)

    assert len(calls) >= 3


def test_run_exits_promptly_when_stopped(runtime, ledger):
    runtime.containers = [make_container("c")]
    sweeper = _sweeper(runtime, ledger, interval=3600.0)

    _run_until(sweeper, lambda: runtime.stopped)

    assert runtime.stopped == [("c", 0)]
    assert runtime.list_calls == [False]

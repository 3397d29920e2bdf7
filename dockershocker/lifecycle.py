"""Container lifecycle management for idle containers."""

import asyncio
import dataclasses
import datetime
from typing import List

import structlog

from .docker_discovery import DockerRuntime
from .exceptions import ContainerNotFound, GatewayUnavailable, LifecycleError
from .ledger import ActivityLedger
from .timeouts import DEFAULT_IDLE_TIMEOUT, resolve_timeout

logger = structlog.get_logger()

DEFAULT_SWEEP_INTERVAL = 60.0
DEFAULT_SWEEP_BACKOFF = 2.0


@dataclasses.dataclass
class SweepReport:
    """Outcome of one sweep cycle."""

    evaluated: int = 0
    stopped: List[str] = dataclasses.field(default_factory=list)
    failed: List[str] = dataclasses.field(default_factory=list)


class IdleSweeper:
    """Stops eligible containers that have been idle past their timeout."""

    def __init__(
        self,
        runtime: DockerRuntime,
        ledger: ActivityLedger,
        enabled_label: str,
        timeout_label: str,
        default_timeout: datetime.timedelta = DEFAULT_IDLE_TIMEOUT,
        interval: float = DEFAULT_SWEEP_INTERVAL,
        backoff: float = DEFAULT_SWEEP_BACKOFF,
    ) -> None:
        self.runtime = runtime
        self.ledger = ledger
        self.enabled_label = enabled_label
        self.timeout_label = timeout_label
        self.default_timeout = default_timeout
        self.interval = interval
        self.backoff = backoff

    def sweep_once(self) -> SweepReport:
        """Run one cycle over every running container.

        Raises:
            GatewayUnavailable: the container listing failed; nothing was stopped
        """
        report = SweepReport()
        containers = self.runtime.list_containers(include_stopped=False)

        for container in containers:
            if not container.is_eligible(self.enabled_label):
                continue
            report.evaluated += 1

            timeout = resolve_timeout(
                container, self.timeout_label, self.default_timeout
            )
            record = self.ledger.get(container.id)
            idle_seconds = self.ledger.seconds_since(record)
            if idle_seconds <= timeout.total_seconds():
                continue

            try:
                # Idle workloads are expendable: no graceful shutdown window
                self.runtime.stop_container(container.id, grace_period_seconds=0)
            except ContainerNotFound as e:
                # Removed since listing; its id will never be listed again
                self.ledger.forget(container.id, expected=record)
                logger.info(
                    "container_vanished_before_stop",
                    container=container.name,
                    container_id=container.id[:12],
                    error=str(e),
                )
                report.failed.append(container.id)
                continue
            except LifecycleError as e:
                logger.warning(
                    "container_idle_stop_failed",
                    container=container.name,
                    container_id=container.id[:12],
                    error=str(e),
                )
                report.failed.append(container.id)
                continue

            self.ledger.forget(container.id, expected=record)
            report.stopped.append(container.id)
            logger.info(
                "container_stopped_idle",
                container=container.name,
                container_id=container.id[:12],
                idle_minutes=(
                    None if record is None else round(idle_seconds / 60, 1)
                ),
                timeout_minutes=timeout.total_seconds() / 60,
            )

        return report

    async def run(self, stop_event: asyncio.Event) -> None:
        """Sweep until ``stop_event`` is set.

        Each cycle runs in a worker thread since the Docker client blocks.
        A listing failure waits ``backoff`` seconds instead of ``interval``.
        """
        logger.info(
            "idle_sweeper_started", interval=self.interval, backoff=self.backoff
        )
        while not stop_event.is_set():
            delay = self.interval
            try:
                logger.debug("idle_sweep_started")
                report = await asyncio.to_thread(self.sweep_once)
                logger.debug(
                    "idle_sweep_finished",
                    evaluated=report.evaluated,
                    stopped=len(report.stopped),
                    failed=len(report.failed),
                )
            except GatewayUnavailable as e:
                logger.error("idle_sweep_list_failed", error=str(e))
                delay = self.backoff
            except Exception as e:
                logger.error("idle_sweeper_error", error=str(e))

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

        logger.info("idle_sweeper_stopped")

"""Request-triggered wake of stopped containers."""

import dataclasses
from typing import List, Optional

import structlog

from .docker_discovery import DockerRuntime
from .exceptions import ContainerNotFound
from .ledger import ActivityLedger, AccessRecord
from .models import ManagedContainer

logger = structlog.get_logger()


@dataclasses.dataclass
class WakeResult:
    container: ManagedContainer
    started: bool
    access: AccessRecord


def normalize_host(host: str) -> str:
    """Strip the port from a Host header value."""
    host = host.strip()
    if host.startswith("["):
        # IPv6 literal, e.g. [::1]:8080
        return host[1 : host.find("]")] if "]" in host else host
    return host.rsplit(":", 1)[0] if host.count(":") == 1 else host


def find_container(
    containers: List[ManagedContainer], host: str
) -> Optional[ManagedContainer]:
    """Return the first container answering to ``host``, in listing order."""
    matches = [c for c in containers if c.answers_to(host)]
    if len(matches) > 1:
        logger.warning(
            "host_alias_ambiguous",
            host=host,
            containers=[c.name for c in matches],
            chosen=matches[0].name,
        )
    return matches[0] if matches else None


class WakeRouter:
    """Resolves a host to a container, starts it if needed and records access."""

    def __init__(
        self, runtime: DockerRuntime, ledger: ActivityLedger, enabled_label: str
    ) -> None:
        self.runtime = runtime
        self.ledger = ledger
        self.enabled_label = enabled_label

    def wake(self, host: str) -> WakeResult:
        """Make sure the container behind ``host`` is running.

        Only containers carrying the enabled label are started; a stopped
        unmanaged container is left alone but its access is still recorded.

        Args:
            host: Host header of the inbound request

        Returns:
            The matched container, whether a start was issued and the access

        Raises:
            ContainerNotFound: no container answers to the host
            GatewayUnavailable: the Docker API could not be reached
            StartFailed: the container would not start
        """
        host = normalize_host(host)
        logger.debug("wake_requested", host=host)

        containers = self.runtime.list_containers(include_stopped=True)
        container = find_container(containers, host)
        if container is None:
            raise ContainerNotFound(f"no container matched host {host}")

        started = False
        if not container.is_running:
            if container.is_eligible(self.enabled_label):
                self.runtime.start_container(container.id)
                started = True
                logger.info(
                    "container_started_on_request",
                    container=container.name,
                    container_id=container.id[:12],
                    host=host,
                )
            else:
                logger.info(
                    "container_not_managed_skip_start",
                    container=container.name,
                    run_state=container.run_state,
                    host=host,
                )

        access = self.ledger.record_access(container.id)
        return WakeResult(container=container, started=started, access=access)

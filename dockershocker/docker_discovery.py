"""Docker Engine access for dockershocker."""

import threading
from typing import List, Optional

from docker import APIClient, errors
import structlog

from .exceptions import ContainerNotFound, GatewayUnavailable, StartFailed, StopFailed
from .models import ManagedContainer

logger = structlog.get_logger()


class DockerRuntime:
    """Thin wrapper over the low-level Docker API client.

    The client is created on first use. ``APIClient(version="auto")`` talks
    to the daemon while being constructed, so creation is retried on the
    next call after a failure instead of failing start-up.
    """

    def __init__(self, base_url: str, timeout: int = 60) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self._client: Optional[APIClient] = None
        self._client_lock = threading.Lock()

    def _get_client(self) -> APIClient:
        with self._client_lock:
            if self._client is None:
                try:
                    self._client = APIClient(
                        base_url=self.base_url, version="auto", timeout=self.timeout
                    )
                except (errors.DockerException, OSError) as e:
                    logger.warning(
                        "docker_unavailable", base_url=self.base_url, error=str(e)
                    )
                    raise GatewayUnavailable(str(e)) from e
                logger.info("docker_client_created", base_url=self.base_url)
            return self._client

    def list_containers(self, include_stopped: bool = False) -> List[ManagedContainer]:
        """List containers in a single API call.

        Args:
            include_stopped: Also return containers that are not running

        Returns:
            Containers in the order the daemon listed them

        Raises:
            GatewayUnavailable: the daemon could not be reached
        """
        client = self._get_client()
        try:
            raw = client.containers(all=include_stopped)
        except (errors.DockerException, OSError) as e:
            raise GatewayUnavailable(str(e)) from e

        containers = [ManagedContainer.from_docker(c) for c in raw]
        logger.debug(
            "containers_listed", count=len(containers), include_stopped=include_stopped
        )
        return containers

    def start_container(self, container_id: str) -> None:
        """Start a container; starting a running container is a no-op.

        Raises:
            ContainerNotFound: the container no longer exists
            StartFailed: the daemon refused to start it
            GatewayUnavailable: the daemon could not be reached
        """
        client = self._get_client()
        try:
            client.start(container_id)
        except errors.NotFound as e:
            raise ContainerNotFound(_explain(e)) from e
        except errors.APIError as e:
            raise StartFailed(_explain(e)) from e
        except (errors.DockerException, OSError) as e:
            raise GatewayUnavailable(str(e)) from e

    def stop_container(self, container_id: str, grace_period_seconds: int = 0) -> None:
        """Stop a container, killing it after ``grace_period_seconds``.

        Raises:
            ContainerNotFound: the container no longer exists
            StopFailed: the daemon refused to stop it
            GatewayUnavailable: the daemon could not be reached
        """
        client = self._get_client()
        try:
            client.stop(container_id, timeout=grace_period_seconds)
        except errors.NotFound as e:
            raise ContainerNotFound(_explain(e)) from e
        except errors.APIError as e:
            raise StopFailed(_explain(e)) from e
        except (errors.DockerException, OSError) as e:
            raise GatewayUnavailable(str(e)) from e

    def ping(self) -> bool:
        """Return True if the daemon answers a ping."""
        try:
            return bool(self._get_client().ping())
        except GatewayUnavailable:
            return False
        except (errors.DockerException, OSError) as e:
            logger.warning("docker_ping_failed", error=str(e))
            return False

    def close(self) -> None:
        with self._client_lock:
            if self._client is not None:
                self._client.close()
                self._client = None
                logger.info("docker_client_closed")


def _explain(e: errors.APIError) -> str:
    return e.explanation or str(e)

"""Error taxonomy and HTTP error helpers for dockershocker."""

from fastapi import HTTPException


class LifecycleError(Exception):
    """Base class for container lifecycle failures."""


class GatewayUnavailable(LifecycleError):
    """The Docker daemon could not be reached."""


class ContainerNotFound(LifecycleError):
    """No container matched, or the container vanished mid-operation."""


class StartFailed(LifecycleError):
    """The Docker daemon refused to start a container."""


class StopFailed(LifecycleError):
    """The Docker daemon refused to stop a container."""


class RateLimited(LifecycleError):
    """The admission limiter rejected a request."""


def container_not_found(host: str) -> HTTPException:
    """Return 404 error for a host no container answers to."""
    return HTTPException(
        status_code=404, detail=f"No container matched the requested host: {host}"
    )


def docker_unavailable(detail: str) -> HTTPException:
    """Return 503 error when the Docker API cannot be reached."""
    return HTTPException(status_code=503, detail=detail)


def start_failed(host: str, detail: str) -> HTTPException:
    """Return 500 error for a container that would not start."""
    return HTTPException(
        status_code=500,
        detail=f"Error starting container for host {host}: {detail}",
    )


def too_many_requests() -> HTTPException:
    """Return 429 error for requests rejected by the admission limiter."""
    return HTTPException(status_code=429, detail="Too many requests")

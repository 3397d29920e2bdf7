"""Data models for dockershocker."""

from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field


# Run state constants
RUN_STATE_RUNNING = "running"
RUN_STATE_STOPPED = "stopped"

# Docker states that mean the container is not running and will not become
# running on its own
_STOPPED_DOCKER_STATES = {"exited", "created", "dead"}

_TRUTHY = {"true", "1", "yes", "on"}


class ManagedContainer(BaseModel):
    """A container as reported by the Docker Engine list API."""

    id: str
    names: List[str] = Field(default_factory=list)
    logical_names: Set[str] = Field(default_factory=set)
    labels: Dict[str, str] = Field(default_factory=dict)
    run_state: str = RUN_STATE_STOPPED
    status: str = ""

    @property
    def name(self) -> str:
        return self.names[0] if self.names else self.id[:12]

    @property
    def is_running(self) -> bool:
        return self.run_state == RUN_STATE_RUNNING

    def is_eligible(self, enabled_label: str) -> bool:
        """Return True if the container opted into automatic lifecycle management."""
        value = self.labels.get(enabled_label)
        return value is not None and value.strip().lower() in _TRUTHY

    def declared_timeout(self, timeout_label: str) -> Optional[str]:
        return self.labels.get(timeout_label)

    def answers_to(self, host: str) -> bool:
        return host.lower() in {n.lower() for n in self.logical_names}

    @classmethod
    def from_docker(cls, raw: Dict[str, Any]) -> "ManagedContainer":
        """Build a container from one record of ``APIClient.containers()``.

        Aliases are collected from every attached network; a record without
        network settings simply has no logical names.
        """
        aliases: Set[str] = set()
        network_settings = raw.get("NetworkSettings") or {}
        for network in (network_settings.get("Networks") or {}).values():
            aliases.update((network or {}).get("Aliases") or [])

        state = (raw.get("State") or "").lower()
        if state in _STOPPED_DOCKER_STATES or not state:
            run_state = RUN_STATE_STOPPED
        else:
            run_state = state

        return cls(
            id=raw.get("Id", ""),
            names=[n.lstrip("/") for n in raw.get("Names") or []],
            logical_names=aliases,
            labels=raw.get("Labels") or {},
            run_state=run_state,
            status=raw.get("Status") or "",
        )


class ContainerStatus(BaseModel):
    """One row of the managed containers listing."""

    name: str
    status: str
    last_access: Optional[str] = None
    timeout_minutes: float

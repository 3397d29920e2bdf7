import asyncio
import html
from typing import Any, Dict, List, Optional

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from dockershocker.config import Settings
from dockershocker.docker_discovery import DockerRuntime
from dockershocker.exceptions import (
    ContainerNotFound,
    GatewayUnavailable,
    RateLimited,
    StartFailed,
    container_not_found,
    docker_unavailable,
    start_failed,
    too_many_requests,
)
from dockershocker.ledger import ActivityLedger
from dockershocker.lifecycle import IdleSweeper
from dockershocker.limiter import AdmissionLimiter
from dockershocker.models import ContainerStatus
from dockershocker.timeouts import resolve_timeout
from dockershocker.wake import WakeRouter

logger = structlog.get_logger()

WAKE_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def create_app(
    settings: Optional[Settings] = None,
    runtime: Optional[DockerRuntime] = None,
    ledger: Optional[ActivityLedger] = None,
    limiter: Optional[AdmissionLimiter] = None,
    run_sweeper: bool = True,
) -> FastAPI:
    """Build the wake-trigger application and its lifecycle components.

    Components not passed in are built from ``settings``. With
    ``run_sweeper`` the idle sweeper runs as a background task between
    application startup and shutdown.
    """
    settings = settings or Settings()
    runtime = runtime or DockerRuntime(settings.docker_host)
    ledger = ledger or ActivityLedger()
    limiter = limiter or AdmissionLimiter(settings.rate_limit, settings.burst_limit)

    sweeper = IdleSweeper(
        runtime,
        ledger,
        enabled_label=settings.enabled_label,
        timeout_label=settings.timeout_label,
        default_timeout=settings.default_idle_timeout,
        interval=settings.sweep_interval_seconds,
        backoff=settings.sweep_backoff_seconds,
    )
    router = WakeRouter(runtime, ledger, enabled_label=settings.enabled_label)

    app = FastAPI(title="dockershocker")
    app.state.settings = settings
    app.state.runtime = runtime
    app.state.ledger = ledger
    app.state.limiter = limiter
    app.state.sweeper = sweeper
    app.state.router = router
    app.state.sweeper_stop = None
    app.state.sweeper_task = None

    # ------------------------------------------------------------------
    # Admission control and background tasks
    # ------------------------------------------------------------------

    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):
        try:
            limiter.admit()
        except RateLimited:
            logger.warning(
                "request_rate_limited",
                host=request.headers.get("host"),
                path=request.url.path,
            )
            exc = too_many_requests()
            return JSONResponse(
                status_code=exc.status_code, content={"detail": exc.detail}
            )
        return await call_next(request)

    @app.on_event("startup")
    async def start_idle_sweeper() -> None:
        """Start the idle sweeper background task."""
        if not run_sweeper:
            return
        app.state.sweeper_stop = asyncio.Event()
        app.state.sweeper_task = asyncio.create_task(
            sweeper.run(app.state.sweeper_stop)
        )
        logger.info("server_started", port=settings.port)

    @app.on_event("shutdown")
    async def _graceful_shutdown() -> None:
        """Stop the sweeper and close the Docker client."""
        if app.state.sweeper_task is not None:
            app.state.sweeper_stop.set()
            await app.state.sweeper_task
            app.state.sweeper_task = None

        try:
            runtime.close()
        except Exception as e:
            logger.warning("docker_client_close_failed", error=str(e))

    # ------------------------------------------------------------------
    # Health and status
    # ------------------------------------------------------------------

    @app.get("/health")
    def health() -> Dict[str, Any]:
        """Liveness probe; fails when the Docker API does not answer a ping."""
        if not runtime.ping():
            raise HTTPException(
                status_code=500, detail="Failed to connect to Docker API"
            )
        return {"status": "ok", "limiter": limiter.get_stats()}

    def _managed_containers() -> List[ContainerStatus]:
        try:
            containers = runtime.list_containers(include_stopped=True)
        except GatewayUnavailable as e:
            logger.error("status_list_failed", error=str(e))
            raise docker_unavailable("Failed to fetch containers")

        accesses = ledger.snapshot()
        rows = []
        for container in containers:
            if not container.is_eligible(settings.enabled_label):
                continue
            timeout = resolve_timeout(
                container, settings.timeout_label, settings.default_idle_timeout
            )
            record = accesses.get(container.id)
            rows.append(
                ContainerStatus(
                    name=container.name,
                    status=container.status or container.run_state,
                    last_access=record.at.isoformat() if record else None,
                    timeout_minutes=timeout.total_seconds() / 60,
                )
            )
        return rows

    @app.get("/containers", response_class=HTMLResponse)
    def show_containers() -> HTMLResponse:
        """Render the managed containers as an HTML table."""
        rows = "".join(
            "<tr><td>{}</td><td>{}</td><td>{}</td><td>{:g} min</td></tr>".format(
                html.escape(row.name),
                html.escape(row.status),
                html.escape(row.last_access or "never"),
                row.timeout_minutes,
            )
            for row in _managed_containers()
        )
        return HTMLResponse(
            "<h1>Managed Containers</h1>"
            '<table border="1">'
            "<tr><th>Name</th><th>Status</th><th>Last Access</th><th>Timeout</th></tr>"
            f"{rows}</table>"
        )

    @app.get("/containers.json")
    def list_containers() -> Dict[str, List[Dict[str, Any]]]:
        """Return the managed containers as JSON."""
        return {"containers": [row.model_dump() for row in _managed_containers()]}

    # ------------------------------------------------------------------
    # Wake trigger (must stay last: it matches every path)
    # ------------------------------------------------------------------

    @app.api_route("/{path:path}", methods=WAKE_METHODS)
    def wake_trigger(request: Request, path: str) -> RedirectResponse:
        """Start the container behind the Host header and redirect back.

        The reverse proxy sends requests here while the target container is
        down; the client is told to retry the same URL once the start was
        issued.
        """
        host = request.headers.get("host", "")
        if not host:
            raise HTTPException(status_code=400, detail="missing Host header")

        try:
            router.wake(host)
        except ContainerNotFound:
            logger.info("wake_no_container", host=host)
            raise container_not_found(host)
        except GatewayUnavailable as e:
            logger.error("wake_docker_unavailable", host=host, error=str(e))
            raise docker_unavailable("Error fetching containers")
        except StartFailed as e:
            logger.error("wake_start_failed", host=host, error=str(e))
            raise start_failed(host, str(e))

        target = request.url.path
        if request.url.query:
            target = f"{target}?{request.url.query}"
        return RedirectResponse(url=target, status_code=303)

    return app

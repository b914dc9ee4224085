from __future__ import annotations

import logging
import os
import secrets
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
import uvicorn

from skillpulse import (
    APSchedulerAlarms,
    SkillPulse,
    build_service,
    ensure_workspace,
    setup_logging,
    workspace_root,
)

logger = logging.getLogger("skillpulse")


# ── Lifespan ──────────────────────────────────────────────────


def create_app(service: SkillPulse | None = None) -> FastAPI:
    """Build the HTTP adapter; a prebuilt *service* skips config loading."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        scheduler: APSchedulerAlarms | None = None
        svc = service
        if svc is None:
            root = workspace_root()
            settings = ensure_workspace(root)
            setup_logging(settings.log_level)
            scheduler = APSchedulerAlarms(settings.tz())
            svc = build_service(root, settings=settings, alarms=scheduler)
            scheduler.set_listener(svc.handle_alarm)
            scheduler.start()
        app.state.service = svc
        await svc.start()
        logger.info("SkillPulse ready")
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.shutdown()
            logger.info("SkillPulse stopped")

    app = FastAPI(title="SkillPulse", version="0.1.0", lifespan=lifespan)
    _register_routes(app)
    return app


# ── Auth ──────────────────────────────────────────────────────

security = HTTPBasic(auto_error=False)


def get_current_user(credentials: HTTPBasicCredentials | None = Depends(security)) -> str:
    expected_username = os.environ.get("SKILLPULSE_USERNAME", "")
    expected_password = os.environ.get("SKILLPULSE_PASSWORD", "")

    if not expected_username or not expected_password:
        return "guest"

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Basic"},
        )

    correct_username = secrets.compare_digest(credentials.username.encode("utf-8"), expected_username.encode("utf-8"))
    correct_password = secrets.compare_digest(credentials.password.encode("utf-8"), expected_password.encode("utf-8"))

    if not (correct_username and correct_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

    return credentials.username


def get_service(request: Request) -> SkillPulse:
    return request.app.state.service


# ── Endpoints ─────────────────────────────────────────────────


def _register_routes(app: FastAPI) -> None:
    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"ok": "true"}

    @app.get("/api/state")
    async def api_get_state(
        service: SkillPulse = Depends(get_service),
        username: str = Depends(get_current_user),
    ) -> dict[str, Any]:
        return await service.dispatch({"type": "GET_STATE"})

    @app.post("/api/command")
    async def api_command(
        message: Any = Body(...),
        service: SkillPulse = Depends(get_service),
        username: str = Depends(get_current_user),
    ) -> dict[str, Any]:
        return await service.dispatch(message)


app = create_app()


def main() -> None:
    host = os.environ.get("SKILLPULSE_HOST", "127.0.0.1")
    port = int(os.environ.get("SKILLPULSE_PORT", "8765"))
    uvicorn.run("ui.app:app", host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()

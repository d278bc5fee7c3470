"""HTTP surface of opsbot: the GitHub webhook receiver."""

from __future__ import annotations

import json
import logging

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse

from opsbot.github import Notifier, dispatch
from opsbot.settings import Settings

logger = logging.getLogger(__name__)


def create_app(settings: Settings, notify: Notifier) -> FastAPI:
    """
    Construct the webhook application.

    Parameters
    ----------
    settings : Settings
        Supplies the notification channels and role ids.
    notify : Notifier
        Posts `(channel_id, content)` through the live chat client.
    """
    app = FastAPI(title="opsbot", docs_url=None, redoc_url=None)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/github-webhook")
    async def github_webhook(
        request: Request,
        x_github_event: str | None = Header(default=None),
    ) -> JSONResponse:
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return JSONResponse(status_code=400, content={"detail": "Body is not JSON"})

        result = await dispatch(
            x_github_event,
            payload,
            settings=settings,
            notify=notify,
            mentions=settings.github_mentions(),
        )
        logger.info("GitHub %s event -> %d %s", x_github_event, result.status_code, result.detail)
        return JSONResponse(status_code=result.status_code, content={"detail": result.detail})

    return app

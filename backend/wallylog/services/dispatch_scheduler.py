from __future__ import annotations

import asyncio
import logging
from contextlib import suppress

from fastapi import FastAPI

from wallylog.core.config import DISPATCH_REQUIRED_SETTINGS, require_settings, settings
from wallylog.services.content_client import ContentClient
from wallylog.services.dispatch import DispatchJob
from wallylog.services.issue_store import GitHubIssueStore

logger = logging.getLogger(__name__)


async def _run_once() -> None:
    job = DispatchJob(GitHubIssueStore.from_settings(), ContentClient())
    await job.run()


async def _loop(stop: asyncio.Event) -> None:
    interval = max(60, int(settings.dispatch_poll_interval_seconds))
    while not stop.is_set():
        try:
            await _run_once()
        except asyncio.CancelledError:
            break
        except Exception as exc:
            logger.warning("dispatch_scheduler_failed", extra={"error": str(exc)})

        with suppress(asyncio.TimeoutError):
            await asyncio.wait_for(stop.wait(), timeout=interval)


def start(app: FastAPI) -> None:
    if not settings.dispatch_scheduler_enabled:
        return
    if getattr(app.state, "dispatch_scheduler_task", None) is not None:
        return
    require_settings(settings, DISPATCH_REQUIRED_SETTINGS)

    stop = asyncio.Event()
    task = asyncio.create_task(_loop(stop))
    app.state.dispatch_scheduler_stop = stop
    app.state.dispatch_scheduler_task = task


async def stop(app: FastAPI) -> None:
    stop_event = getattr(app.state, "dispatch_scheduler_stop", None)
    task = getattr(app.state, "dispatch_scheduler_task", None)
    if stop_event:
        stop_event.set()
    if task:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
    app.state.dispatch_scheduler_stop = None
    app.state.dispatch_scheduler_task = None

"""GitHub webhook payloads and their chat notifications.

Only the handful of events the team watches are understood:

- `pull_request` / `opened`: announce the PR to the dev role.
- `pull_request` / `review_requested`: ping the requested reviewer.
- `workflow_run` / `completed`: report the run's conclusion.

Everything else is acknowledged and dropped.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from opsbot.channel import ChannelError
from opsbot.settings import Settings

logger = logging.getLogger(__name__)

Notifier = Callable[[int, str], Awaitable[None]]


class NotifierUnavailableError(Exception):
    """The chat client cannot deliver notifications yet."""


class UnsupportedEventError(Exception):
    """The webhook event type is not handled."""


class BranchRef(BaseModel):
    ref: str


class Repository(BaseModel):
    full_name: str


class User(BaseModel):
    login: str


class PullRequest(BaseModel):
    html_url: str
    title: str
    head: BranchRef | None = None
    base: BranchRef | None = None


class PullRequestEvent(BaseModel):
    action: str
    pull_request: PullRequest
    repository: Repository
    sender: User
    requested_reviewer: User | None = None


class WorkflowRun(BaseModel):
    html_url: str
    name: str
    status: str | None = None
    conclusion: str | None = None


class WorkflowRunEvent(BaseModel):
    action: str
    workflow_run: WorkflowRun
    repository: Repository


@dataclass(slots=True, frozen=True)
class Notification:
    channel_id: int
    content: str


@dataclass(slots=True, frozen=True)
class WebhookResponse:
    status_code: int
    detail: str


def format_pull_request_opened(event: PullRequestEvent, role_id: int | None) -> str:
    pr = event.pull_request
    head = pr.head.ref if pr.head else "?"
    base = pr.base.ref if pr.base else "?"
    mention = f"<@&{role_id}> " if role_id else ""
    return (
        f"{mention}New PR in **{event.repository.full_name}** by `{event.sender.login}`:\n"
        f"**{pr.title}**\n"
        f"`{head}` → `{base}`\n"
        f"{pr.html_url}"
    )


def format_review_requested(event: PullRequestEvent, mentions: Mapping[str, str]) -> str:
    reviewer = event.requested_reviewer.login if event.requested_reviewer else "(unknown)"
    reviewer_display = mentions.get(reviewer) or f"`{reviewer}`"
    return (
        f"`{event.sender.login}` requested a review from {reviewer_display} "
        f"on PR in **{event.repository.full_name}**:\n"
        f"**{event.pull_request.title}**\n"
        f"{event.pull_request.html_url}"
    )


def format_workflow_run(event: WorkflowRunEvent) -> str:
    run = event.workflow_run
    return (
        f"Workflow run **{run.name}** in **{event.repository.full_name}** completed "
        f"with status `{run.status or 'unknown'}` and result `{run.conclusion or 'unknown'}`:\n"
        f"{run.html_url}"
    )


def build_notification(
    event_type: str | None,
    payload: Any,
    settings: Settings,
    mentions: Mapping[str, str] | None = None,
) -> Notification | None:
    """
    Turn a webhook delivery into the message to post, if any.

    Raises:
        UnsupportedEventError: `event_type` is missing or not handled.
        pydantic.ValidationError: The payload does not match the event.
    """
    if event_type == "pull_request":
        event = PullRequestEvent.model_validate(payload)
        if settings.pr_channel_id is None:
            return None
        if event.action == "opened":
            content = format_pull_request_opened(event, settings.dev_role_id)
        elif event.action == "review_requested":
            content = format_review_requested(event, mentions or {})
        else:
            return None
        return Notification(settings.pr_channel_id, content)

    if event_type == "workflow_run":
        run_event = WorkflowRunEvent.model_validate(payload)
        if run_event.action != "completed" or settings.workflow_channel_id is None:
            return None
        return Notification(settings.workflow_channel_id, format_workflow_run(run_event))

    if event_type == "ping":
        return None

    raise UnsupportedEventError(f"Unsupported GitHub event: {event_type!r}")


async def dispatch(
    event_type: str | None,
    payload: Any,
    *,
    settings: Settings,
    notify: Notifier,
    mentions: Mapping[str, str] | None = None,
) -> WebhookResponse:
    """Handle one webhook delivery and report the HTTP outcome."""
    try:
        notification = build_notification(event_type, payload, settings, mentions)
    except UnsupportedEventError as exc:
        return WebhookResponse(501, str(exc))
    except ValidationError as exc:
        logger.warning("Malformed %s payload: %s", event_type, exc.error_count())
        return WebhookResponse(400, f"Malformed {event_type} payload")

    if notification is None:
        return WebhookResponse(200, "ignored")

    try:
        await notify(notification.channel_id, notification.content)
    except NotifierUnavailableError as exc:
        logger.error("Dropping %s notification: %s", event_type, exc)
        return WebhookResponse(503, str(exc))
    except ChannelError as exc:
        logger.error("Failed to post %s notification: %s", event_type, exc)
        return WebhookResponse(502, str(exc))
    return WebhookResponse(200, "delivered")

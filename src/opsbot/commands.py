"""Predefined system administration actions run as shell commands."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from opsbot.monitor import MESSAGE_LIMIT
from opsbot.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CommandOutput:
    """Result of a finished shell command."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass(slots=True, frozen=True)
class Action:
    """A named slash-command action backed by a fixed argv."""

    name: str
    label: str
    description: str
    argv: tuple[str, ...]


async def run_command(args: list[str] | tuple[str, ...], timeout: float = 300.0) -> CommandOutput:
    """
    Run a command without a shell and capture its output.

    Raises:
        OSError: The executable could not be started.
        TimeoutError: The command outlived `timeout` seconds and was killed.
    """
    logger.info("Running command: %s", " ".join(args))
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise TimeoutError(f"{args[0]} timed out after {timeout:g}s") from None

    return CommandOutput(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace").strip(),
        stderr=stderr.decode("utf-8", errors="replace").strip(),
    )


def _bash(script: str) -> tuple[str, ...]:
    return ("bash", "-c", script)


def build_actions(settings: Settings) -> dict[str, Action]:
    """Return the parameterless actions keyed by slash command name."""
    backend = settings.backend_dir
    scripts = settings.scripts_dir.rstrip("/")
    cargo = f"cd {backend} && source ~/.cargo/env && cargo make"

    actions = [
        Action("clean", "Clean", "Run cargo make clean", _bash(f"{cargo} clean")),
        Action("fresh", "Fresh", "Run cargo make fresh", _bash(f"{cargo} fresh")),
        Action("migrate", "Migrate", "Run cargo make migrate", _bash(f"{cargo} migrate")),
        Action(
            "restart_api",
            "Restart API",
            "Restart the API",
            _bash(f"{scripts}/restart-api.sh"),
        ),
        Action("start_api", "Start API", "Start the API", _bash(f"{scripts}/start-api.sh")),
        Action("stop_api", "Stop API", "Stop the API", _bash(f"{scripts}/stop-api.sh")),
        Action(
            "tail_logs",
            "Tail Logs",
            "Tail the API log file",
            _bash(f"tail -n 50 {settings.api_log_file}"),
        ),
        Action("reboot", "Reboot Server", "Reboot the server", ("sudo", "reboot")),
    ]
    return {action.name: action for action in actions}


def truncate(text: str, limit: int = MESSAGE_LIMIT) -> str:
    """Shorten `text` to fit in one chat message."""
    if len(text) <= limit:
        return text
    return text[: limit - 4].rstrip() + "\n…"


def _code_block(text: str, budget: int) -> str:
    if len(text) > budget:
        text = "…" + text[-(budget - 1) :]
    return f"```{text}```"


def format_result(label: str, output: CommandOutput) -> str:
    """Format a finished command as a chat reply."""
    if output.ok:
        head = f"✅ **{label}** executed successfully:\n"
        body = output.stdout
    else:
        head = f"❌ **{label}** failed:\n"
        body = output.stderr or output.stdout
    # Keep the tail of long output; the end usually says what went wrong
    return head + _code_block(body, MESSAGE_LIMIT - len(head) - 6)


def format_error(exc: BaseException) -> str:
    return truncate(f"❌ Error: {exc}")


async def run_action(action: Action, timeout: float = 300.0) -> str:
    """Run an action and return the reply text."""
    try:
        output = await run_command(action.argv, timeout=timeout)
    except (OSError, TimeoutError) as exc:
        logger.error("Action %s could not run: %s", action.name, exc)
        return format_error(exc)
    if not output.ok:
        logger.warning("Action %s exited with %d", action.name, output.returncode)
    return format_result(action.label, output)


async def restart_service(service: str, timeout: float = 300.0) -> str:
    """Restart a systemd unit and return the reply text."""
    try:
        output = await run_command(("systemctl", "restart", service), timeout=timeout)
    except (OSError, TimeoutError) as exc:
        logger.error("Restart of %s could not run: %s", service, exc)
        return format_error(exc)
    if output.ok:
        return f"✅ Restarted `{service}` successfully."
    return truncate(f"❌ Failed to restart `{service}`:\n```{output.stderr}```")


async def uptime(timeout: float = 30.0) -> str:
    """Return the `uptime` line as a reply."""
    try:
        output = await run_command(("uptime",), timeout=timeout)
    except (OSError, TimeoutError) as exc:
        return format_error(exc)
    return f"`{output.stdout}`"

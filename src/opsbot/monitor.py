"""System metrics sampling and status rendering for opsbot."""

import time
from datetime import datetime, timezone

import psutil

from opsbot.models import DiskUsage, SystemSnapshot

STATUS_SIGNATURE = "System Status"

# Longest message Discord accepts
MESSAGE_LIMIT = 2000

# Sensor chips checked in order before falling back to whatever is reported
_TEMPERATURE_SENSORS = ("coretemp", "k10temp", "cpu_thermal", "acpitz")

# Initialize CPU percent (first call returns 0.0)
psutil.cpu_percent(percpu=True)


def sample() -> SystemSnapshot:
    """
    Collect a snapshot of the current system state.

    CPU percentages are non-blocking and cover the time since the previous
    call, so the first sample after startup may read zero.
    """
    per_core = tuple(psutil.cpu_percent(percpu=True))
    average = sum(per_core) / len(per_core) if per_core else 0.0

    mem = psutil.virtual_memory()
    uptime = time.time() - psutil.boot_time()

    return SystemSnapshot(
        cpu_percent=average,
        cpu_percent_per_core=per_core,
        memory_used=mem.used,
        memory_total=mem.total,
        disks=_collect_disks(),
        temperature=_read_temperature(),
        uptime_seconds=uptime,
        captured_at=datetime.now(timezone.utc),
    )


def _collect_disks() -> tuple[DiskUsage, ...]:
    """Collect usage for every mounted physical partition."""
    disks: list[DiskUsage] = []
    for part in psutil.disk_partitions(all=False):
        try:
            usage = psutil.disk_usage(part.mountpoint)
        except OSError:
            # Unreadable mounts (e.g. empty optical drives) are skipped
            continue
        disks.append(
            DiskUsage(
                name=part.device,
                mount_point=part.mountpoint,
                used=usage.used,
                total=usage.total,
            )
        )
    return tuple(disks)


def _read_temperature() -> float | None:
    """Return the current CPU temperature, if the platform exposes one."""
    read_sensors = getattr(psutil, "sensors_temperatures", None)
    if read_sensors is None:
        return None
    try:
        sensors = read_sensors()
    except (OSError, RuntimeError):
        return None
    if not sensors:
        return None

    for chip in _TEMPERATURE_SENSORS:
        if sensors.get(chip):
            return sensors[chip][0].current
    for entries in sensors.values():
        if entries:
            return entries[0].current
    return None


def format_uptime(seconds: float) -> str:
    """Format an uptime in seconds as ``N days, HH:MM:SS``."""
    days = int(seconds // 86400)
    hours = int((seconds % 86400) // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    if days > 0:
        return f"{days} days, {hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def render(
    snapshot: SystemSnapshot, interval: int | None = None, limit: int = MESSAGE_LIMIT
) -> str:
    """
    Render a snapshot as a fixed-width status block.

    When the full block would not fit in one chat message, the per-core lines
    collapse into a single min/max line, then trailing disks are dropped.

    Args:
        snapshot: The snapshot to render.
        interval: Refresh interval in seconds, shown in the header when given.
        limit: Maximum length of the returned text, fences included.
    """
    header = STATUS_SIGNATURE
    if interval is not None:
        header += f" (updates every {interval}s)"

    mem_percent = (
        snapshot.memory_used / snapshot.memory_total * 100
        if snapshot.memory_total
        else 0.0
    )
    mem_used_mib = snapshot.memory_used // (1024**2)
    mem_total_mib = snapshot.memory_total // (1024**2)

    summary = [
        header,
        f"Last updated: {snapshot.captured_at:%Y-%m-%d %H:%M:%S} UTC",
        f"Uptime: {format_uptime(snapshot.uptime_seconds)}",
        f"RAM: {mem_percent:.1f}% ({mem_used_mib} MiB / {mem_total_mib} MiB)",
        f"CPU: {snapshot.cpu_percent:.1f}% average over {snapshot.cpu_count} cores",
    ]
    cores = [
        f"  Core {i}: {usage:.1f}%"
        for i, usage in enumerate(snapshot.cpu_percent_per_core)
    ]
    if snapshot.temperature is not None:
        trailer = [f"Temperature: {snapshot.temperature:.1f}°C", "Disks:"]
    else:
        trailer = ["Disks:"]
    disks = [
        f"  {disk.name} ({disk.mount_point}): "
        f"{disk.used / 1e9:.1f} GB / {disk.total / 1e9:.1f} GB "
        f"({disk.used / disk.total * 100:.1f}%)"
        for disk in snapshot.disks
        if disk.total > 0
    ]

    text = _fence(summary + cores + trailer + disks)
    if len(text) <= limit:
        return text

    per_core = snapshot.cpu_percent_per_core
    if per_core:
        cores = [f"  Cores: min {min(per_core):.1f}%, max {max(per_core):.1f}%"]
    shown = len(disks)
    while True:
        lines = summary + cores + trailer + disks[:shown]
        if shown < len(disks):
            lines.append(f"  ... {len(disks) - shown} more")
        text = _fence(lines)
        if len(text) <= limit or shown == 0:
            return text
        shown -= 1


def _fence(lines: list[str]) -> str:
    body = "\n".join(lines)
    return f"```\n{body}\n```"


def report_now() -> str:
    """Sample the system and render an on-demand report."""
    return render(sample())

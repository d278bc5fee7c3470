"""Data models for opsbot."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True, frozen=True)
class DiskUsage:
    """Usage of a single mounted disk."""

    name: str
    mount_point: str
    used: int  # Bytes
    total: int  # Bytes


@dataclass(slots=True, frozen=True)
class SystemSnapshot:
    """Immutable snapshot of overall system state."""

    cpu_percent: float  # 0.0 - 100.0, average over all cores
    cpu_percent_per_core: tuple[float, ...]
    memory_used: int  # Bytes
    memory_total: int  # Bytes
    disks: tuple[DiskUsage, ...]
    temperature: float | None  # Celsius
    uptime_seconds: float
    captured_at: datetime

    @property
    def cpu_count(self) -> int:
        return len(self.cpu_percent_per_core)


@dataclass(slots=True, frozen=True)
class BroadcastConfig:
    """Where and how often the status message is refreshed."""

    channel_id: int
    interval: int = 600  # Seconds


@dataclass(slots=True, frozen=True)
class ChannelMessage:
    """A chat message as seen through the channel capability."""

    id: int
    author_id: int
    content: str

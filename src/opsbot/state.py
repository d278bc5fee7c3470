"""Durable record of the live status message id."""

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)

MAX_MESSAGE_ID = 2**64 - 1


class MessageStateStore:
    """
    Single-record store backed by a text file holding one decimal id.

    Persistence is best effort: read problems look like "no record" and write
    problems are logged, never raised. The in-memory state of the caller stays
    authoritative for the running process.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> int | None:
        """Return the stored message id, or None when absent or unreadable."""
        try:
            raw = self._path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Could not read status state from %s: %s", self._path, exc)
            return None

        if not raw:
            return None
        try:
            message_id = int(raw.split()[0])
        except ValueError:
            logger.warning("Ignoring unparsable status state in %s: %r", self._path, raw[:40])
            return None
        if not 0 < message_id <= MAX_MESSAGE_ID:
            logger.warning("Ignoring out of range status message id %d", message_id)
            return None
        return message_id

    def save(self, message_id: int) -> None:
        """Overwrite the stored id atomically."""
        tmp_name: str | None = None
        try:
            directory = self._path.parent
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=directory,
                prefix=f".{self._path.name}.",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                handle.write(f"{message_id}\n")
            os.replace(tmp_name, self._path)
            tmp_name = None
        except OSError as exc:
            logger.error("Failed to persist status message id %d: %s", message_id, exc)
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

    def clear(self) -> None:
        """Remove the record; a missing file is already clear."""
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Failed to clear status state %s: %s", self._path, exc)

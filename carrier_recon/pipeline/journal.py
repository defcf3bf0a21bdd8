"""Per-document step journal.

Each pipeline step records its status, JSON-serializable output and error so
an interrupted document can resume after its last completed step. An entry
also carries the fingerprint of the inputs it was computed from; a completed
output is only reused when the caller presents the same fingerprint.
"""

import json
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from carrier_recon.utils.logger import get_logger

logger = get_logger(__name__)


class StepStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StepEntry(BaseModel):
    step: str
    status: StepStatus
    output: Any = None
    error: str | None = None
    fingerprint: str | None = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class StepJournal(ABC):
    """Stores step entries per document."""

    @abstractmethod
    def entries(self, document_id: str) -> dict[str, StepEntry]:
        """All entries for a document keyed by step name."""

    @abstractmethod
    def _write(self, document_id: str, entries: dict[str, StepEntry]) -> None:
        """Persist the full entry map for a document."""

    def get(self, document_id: str, step: str) -> StepEntry | None:
        return self.entries(document_id).get(step)

    def completed_output(
        self, document_id: str, step: str, fingerprint: str | None = None
    ) -> tuple[bool, Any]:
        """Return ``(True, output)`` if ``step`` completed for ``fingerprint``."""
        entry = self.get(document_id, step)
        if (
            entry is not None
            and entry.status is StepStatus.COMPLETED
            and entry.fingerprint == fingerprint
        ):
            return True, entry.output
        return False, None

    def record(
        self,
        document_id: str,
        step: str,
        status: StepStatus,
        output: Any = None,
        error: str | None = None,
        fingerprint: str | None = None,
    ) -> StepEntry:
        entry = StepEntry(
            step=step, status=status, output=output, error=error, fingerprint=fingerprint
        )
        entries = self.entries(document_id)
        entries[step] = entry
        self._write(document_id, entries)
        logger.debug("Journal %s/%s -> %s", document_id, step, status.value)
        return entry

    def statuses(self, document_id: str) -> dict[str, str]:
        return {name: e.status.value for name, e in self.entries(document_id).items()}


class InMemoryJournal(StepJournal):
    """Journal kept in process memory."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, StepEntry]] = {}

    def entries(self, document_id: str) -> dict[str, StepEntry]:
        return dict(self._data.get(document_id, {}))

    def _write(self, document_id: str, entries: dict[str, StepEntry]) -> None:
        self._data[document_id] = dict(entries)


class JsonFileJournal(StepJournal):
    """Journal stored as one JSON file per document.

    Args:
        state_dir: Directory holding ``<document_id>.json`` files.
    """

    def __init__(self, state_dir: Path) -> None:
        self.state_dir = Path(state_dir)
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, document_id: str) -> Path:
        return self.state_dir / f"{document_id}.json"

    def entries(self, document_id: str) -> dict[str, StepEntry]:
        path = self._path(document_id)
        with self._lock:
            if not path.exists():
                return {}
            with open(path) as f:
                raw = json.load(f)
        return {name: StepEntry.model_validate(data) for name, data in raw.items()}

    def _write(self, document_id: str, entries: dict[str, StepEntry]) -> None:
        payload = {name: e.model_dump(mode="json") for name, e in entries.items()}
        path = self._path(document_id)
        tmp = path.with_suffix(".json.tmp")
        with self._lock:
            with open(tmp, "w") as f:
                json.dump(payload, f, indent=2)
            tmp.replace(path)

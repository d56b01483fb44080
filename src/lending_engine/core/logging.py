"""Hash-chained event journal for engine observability.

Every published engine event (deposit, borrow, accrual, liquidation...) can be
written to an append-only JSONL journal. Each entry carries the hash of the
previous entry, so any edit, deletion or reordering of the journal is
detectable with verify_journal_integrity.

Human-readable output goes through loguru (console + text file).
"""

from __future__ import annotations

import hashlib
import json
import os
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field

from lending_engine.data.models import EngineEvent


class JournalEntry(BaseModel):
    """A single hash-chained journal entry."""

    recorded_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    journal_id: str
    sequence: int
    level: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    previous_hash: str | None = None
    entry_hash: str | None = None

    def compute_hash(self) -> str:
        """Compute the hash of this entry (excluding entry_hash field)."""
        data_for_hash = self.model_dump(exclude={"entry_hash"})
        json_str = json.dumps(data_for_hash, sort_keys=True, default=str)
        return hashlib.sha256(json_str.encode()).hexdigest()

    def finalize(self) -> JournalEntry:
        self.entry_hash = self.compute_hash()
        return self


class EngineJournal:
    """Append-only, hash-chained journal of engine activity.

    Usage:
        journal = EngineJournal.open("mainnet_pool")
        engine = LendingEngine(journal=journal)
        ...
        ok, errors = verify_journal_integrity(journal.path)
        journal.close()
    """

    def __init__(self, journal_id: str, log_dir: Path) -> None:
        """Initialize the journal.

        Args:
            journal_id: Unique identifier for this journal.
            log_dir: Directory to store journal files.
        """
        self.journal_id = journal_id
        self.log_dir = log_dir
        self._previous_hash: str | None = None
        self._sequence = 0

        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.path = self.log_dir / f"{journal_id}.jsonl"
        self._setup_loguru()

    def _setup_loguru(self) -> None:
        """Attach console and text sinks filtered to this journal."""
        journal_id = self.journal_id

        console_id = logger.add(
            sys.stderr,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{extra[journal_id]}</cyan> | "
                "{message}"
            ),
            level="INFO",
            filter=lambda record: record["extra"].get("journal_id") == journal_id,
        )
        file_id = logger.add(
            self.log_dir / f"{journal_id}.log",
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {message}",
            level="DEBUG",
            filter=lambda record: record["extra"].get("journal_id") == journal_id,
        )
        self._handler_ids = [console_id, file_id]
        self._logger = logger.bind(journal_id=journal_id)

    def close(self) -> None:
        """Detach this journal's loguru sinks and release the text log file."""
        for handler_id in self._handler_ids:
            logger.remove(handler_id)
        self._handler_ids = []

    def __enter__(self) -> EngineJournal:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @classmethod
    def open(
        cls,
        name: str,
        log_dir: str | Path | None = None,
    ) -> EngineJournal:
        """Create a new journal with a unique id.

        Args:
            name: Human-readable name, used as the id prefix.
            log_dir: Directory for journals (default: LENDING_LOG_DIR or ./logs).
        """
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        short_uuid = str(uuid.uuid4())[:8]
        journal_id = f"{name}_{timestamp}_{short_uuid}"

        if log_dir is None:
            log_dir = Path(os.getenv("LENDING_LOG_DIR", "logs"))
        else:
            log_dir = Path(log_dir)

        return cls(journal_id, log_dir)

    def _append(self, level: str, message: str, data: dict[str, Any] | None) -> JournalEntry:
        entry = JournalEntry(
            journal_id=self.journal_id,
            sequence=self._sequence,
            level=level,
            message=message,
            data=data or {},
            previous_hash=self._previous_hash,
        ).finalize()
        with open(self.path, "a") as f:
            f.write(json.dumps(entry.model_dump(), default=str) + "\n")
        self._previous_hash = entry.entry_hash
        self._sequence += 1
        return entry

    def info(self, message: str, data: dict[str, Any] | None = None) -> None:
        self._append("INFO", message, data)
        self._logger.info(message)

    def warning(self, message: str, data: dict[str, Any] | None = None) -> None:
        self._append("WARNING", message, data)
        self._logger.warning(message)

    def error(self, message: str, data: dict[str, Any] | None = None) -> None:
        self._append("ERROR", message, data)
        self._logger.error(message)

    def log_event(self, event: EngineEvent) -> None:
        """Record a published engine event."""
        data = {
            "event_type": event.event_type.value,
            "timestamp": event.timestamp,
            **event.data,
        }
        self._append("EVENT", f"Event: {event.event_type.value}", data)
        self._logger.info(f"EVENT: {event.event_type.value} {event.data}")

    def get_summary(self) -> dict[str, Any]:
        return {
            "journal_id": self.journal_id,
            "entry_count": self._sequence,
            "last_hash": self._previous_hash,
            "path": str(self.path),
        }


def verify_journal_integrity(path: Path) -> tuple[bool, list[str]]:
    """Verify the hash chain of a journal file.

    Args:
        path: Path to the JSONL journal.

    Returns:
        Tuple of (is_valid, list_of_errors).
    """
    errors: list[str] = []
    previous_hash: str | None = None
    expected_sequence = 0

    with open(path) as f:
        for line_num, line in enumerate(f, 1):
            try:
                entry = JournalEntry.model_validate(json.loads(line))
            except ValueError as e:
                errors.append(f"Line {line_num}: Parse error - {e}")
                continue

            if entry.previous_hash != previous_hash:
                errors.append(
                    f"Line {line_num}: Hash chain broken. "
                    f"Expected previous_hash={previous_hash}, "
                    f"got {entry.previous_hash}"
                )

            if entry.sequence != expected_sequence:
                errors.append(
                    f"Line {line_num}: Sequence gap. "
                    f"Expected {expected_sequence}, got {entry.sequence}"
                )

            computed_hash = entry.compute_hash()
            if entry.entry_hash != computed_hash:
                errors.append(
                    f"Line {line_num}: Entry hash mismatch. "
                    f"Expected {computed_hash}, got {entry.entry_hash}"
                )

            previous_hash = entry.entry_hash
            expected_sequence = entry.sequence + 1

    return len(errors) == 0, errors

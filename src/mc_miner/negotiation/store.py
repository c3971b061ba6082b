"""On-disk negotiation record and attempt ledger."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import ValidationError

from mc_miner.models import AttemptEntry, NegotiationRecord

RECORD_FILENAME = "negotiation.json"
LEDGER_FILENAME = "attempts.jsonl"


class NegotiationStore:
    """Persists the confirmed protocol version and the JSONL attempt ledger."""

    def __init__(self, state_dir: str | Path, *, logger: logging.Logger | None = None) -> None:
        self._dir = Path(state_dir)
        self._logger = logger or logging.getLogger("mc_miner.negotiation.store")
        self.record_path = self._dir / RECORD_FILENAME
        self.ledger_path = self._dir / LEDGER_FILENAME

    def load_record(self) -> NegotiationRecord | None:
        if not self.record_path.exists():
            return None
        try:
            return NegotiationRecord.model_validate_json(self.record_path.read_text(encoding="utf-8"))
        except ValidationError as exc:
            # Treated as absent so the next run negotiates again.
            self._logger.warning(
                "negotiation_record_invalid",
                extra={"path": str(self.record_path), "errors": exc.error_count()},
            )
            return None

    def save_record(self, record: NegotiationRecord) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        tmp_path = self.record_path.with_suffix(".json.tmp")
        tmp_path.write_text(record.model_dump_json(indent=2) + "\n", encoding="utf-8")
        os.replace(tmp_path, self.record_path)

    def clear_record(self) -> None:
        self.record_path.unlink(missing_ok=True)

    def append_attempt(self, entry: AttemptEntry) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        with self.ledger_path.open("a", encoding="utf-8") as handle:
            handle.write(entry.model_dump_json() + "\n")
            handle.flush()
            os.fsync(handle.fileno())

    def load_attempts(self) -> list[AttemptEntry]:
        if not self.ledger_path.exists():
            return []

        entries: list[AttemptEntry] = []
        with self.ledger_path.open("r", encoding="utf-8") as handle:
            for line in handle:
                if not line.strip():
                    continue
                try:
                    entries.append(AttemptEntry.model_validate_json(line))
                except ValidationError:
                    # A crash while appending can leave a torn last line.
                    self._logger.warning("ledger_line_skipped", extra={"path": str(self.ledger_path)})
        return entries

    def failed_candidates(self, server: str) -> set[int]:
        return {entry.candidate for entry in self.load_attempts() if entry.server == server and entry.outcome.failed}

    def clear_ledger(self) -> None:
        self.ledger_path.unlink(missing_ok=True)

    def clean(self) -> None:
        self.clear_record()
        self.clear_ledger()

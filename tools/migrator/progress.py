"""Resume state – per-board checkpoints persisted to progress.json.

The file layout matches what earlier migration runs wrote, so an existing
progress.json can be picked up as-is::

    {"b": {"completed": false, "postNo": 1200, "threadMappings": {"1": 17}}}
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ProgressError
from .threads import ThreadMap

logger = logging.getLogger("migrator.progress")


@dataclass
class BoardProgress:
    """Checkpoint for one koko board."""
    completed: bool = False
    post_no: int = 0
    threads: ThreadMap = field(default_factory=ThreadMap)

    @property
    def state(self) -> str:
        if self.completed:
            return "completed"
        return "in progress"

    def advance(self, post_no: int) -> None:
        """Move the cursor to *post_no*; it may never go backwards."""
        if self.completed:
            raise ProgressError("Cannot advance a board that is already completed")
        if post_no < self.post_no:
            raise ProgressError(f"Refusing to move progress back from post no. {self.post_no} to {post_no}")
        self.post_no = post_no

    def complete(self) -> None:
        self.completed = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "completed": self.completed,
            "postNo": self.post_no,
            "threadMappings": {str(k): v for k, v in sorted(self.threads.snapshot().items())},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BoardProgress:
        try:
            mappings = data.get("threadMappings") or {}
            return cls(
                completed=bool(data.get("completed", False)),
                post_no=int(data.get("postNo") or 0),
                threads=ThreadMap({int(k): int(v) for k, v in mappings.items()}),
            )
        except (AttributeError, TypeError, ValueError) as exc:
            raise ProgressError(f"Malformed board progress entry: {exc}") from exc


class ProgressStore:
    """Loads, hands out and rewrites the checkpoints of every board."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self.boards: dict[str, BoardProgress] = {}

    @classmethod
    def load(cls, path: str | os.PathLike[str]) -> ProgressStore:
        """Read *path*, creating an empty file if there is none yet.

        An unreadable or corrupt file is fatal; it is never repaired here.
        """
        store = cls(path)
        if not store.path.exists():
            store.save()
            return store

        logger.info("Found %s, resuming using its contents", store.path)
        logger.info("If you want to start over from the beginning, delete the file and restart the program")
        try:
            data = json.loads(store.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ProgressError(f"Could not read progress file {store.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ProgressError(f"Progress file {store.path} must contain a JSON object")
        for board, entry in data.items():
            if not isinstance(entry, dict):
                raise ProgressError(f"Progress entry for board {board!r} is not an object")
            store.boards[board] = BoardProgress.from_dict(entry)
        return store

    def get(self, board: str) -> BoardProgress | None:
        return self.boards.get(board)

    def board(self, board: str) -> BoardProgress:
        """Return the board's checkpoint, creating and persisting a fresh one if needed."""
        prog = self.boards.get(board)
        if prog is None:
            prog = self.boards[board] = BoardProgress()
            self.save()
        return prog

    def save(self) -> None:
        """Rewrite the whole file atomically."""
        payload = json.dumps({b: p.to_dict() for b, p in self.boards.items()})
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".progress-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

"""Thread grouping and koko → vichan thread id mapping."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Mapping, Sequence

from .errors import ThreadMapConflict

if TYPE_CHECKING:
    from .koko import KokoRow


class ThreadMap:
    """Append-only mapping of koko thread numbers to vichan thread ids.

    One instance belongs to one board's run.  Mappings are only ever added;
    recording a different id for a known thread raises ThreadMapConflict.
    """

    def __init__(self, initial: Mapping[int, int] | None = None) -> None:
        self._ids: dict[int, int] = {}
        for source_no, target_id in (initial or {}).items():
            self.record(int(source_no), int(target_id))

    def resolve(self, source_no: int) -> int | None:
        return self._ids.get(source_no)

    def record(self, source_no: int, target_id: int) -> None:
        existing = self._ids.get(source_no)
        if existing is not None and existing != target_id:
            raise ThreadMapConflict(
                f"Thread {source_no} is already mapped to {existing}, refusing to remap to {target_id}"
            )
        self._ids[source_no] = target_id

    def snapshot(self) -> dict[int, int]:
        """Copy of the current mappings, for persisting."""
        return dict(self._ids)

    def __contains__(self, source_no: object) -> bool:
        return source_no in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __repr__(self) -> str:
        return f"ThreadMap({len(self._ids)} threads)"


def split_threads(rows: Iterable[KokoRow]) -> list[list[KokoRow]]:
    """Group an ordered page of posts into insert batches.

    Every thread root becomes a batch of its own, followed by a batch of the
    replies that come after it in the page.  Replies before the first root form
    the leading batch.  Empty batches are dropped.
    """
    batches: list[list[KokoRow]] = [[]]
    for row in rows:
        if row.resto <= 0:
            batches.append([row])
            batches.append([])
        else:
            batches[-1].append(row)
    return [b for b in batches if b]


def is_root_batch(batch: Sequence[KokoRow]) -> bool:
    return len(batch) == 1 and batch[0].resto <= 0

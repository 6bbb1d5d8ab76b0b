from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from migrator.config import MigratorConfig
from migrator.koko import KokoRow


def make_row(no: int, resto: int = 0, **kwargs: Any) -> KokoRow:
    """Build a koko row with sensible defaults for the fields a test leaves out."""
    fields: dict[str, Any] = {
        "time": 1_650_000_000 + no,
        "com": f"post {no}",
        "name": "Anonymous",
        "pwd": "secret",
        "host": "127.0.0.1",
    }
    fields.update(kwargs)
    return KokoRow(no=no, resto=resto, **fields)


class FakeCursor:
    def __init__(self, conn: FakeConnection) -> None:
        self.conn = conn
        self.lastrowid = 0

    def execute(self, sql: str, params: Any = None) -> None:
        if self.conn.fail_with is not None:
            raise self.conn.fail_with
        self.conn.executed.append((sql, list(params) if params is not None else None))
        self.lastrowid = self.conn.next_id

    def fetchall(self) -> list[dict]:
        return list(self.conn.results)

    def fetchone(self) -> dict | None:
        return self.conn.results[0] if self.conn.results else None

    def __enter__(self) -> FakeCursor:
        return self

    def __exit__(self, *args: object) -> None:
        pass


class FakeConnection:
    """Just enough of a PyMySQL connection for the store classes."""

    def __init__(self, results: list[dict] | None = None, next_id: int = 1) -> None:
        self.results = results or []
        self.next_id = next_id
        self.executed: list[tuple[str, list | None]] = []
        self.fail_with: BaseException | None = None
        self.open = True
        self.commits = 0
        self.rollbacks = 0

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1

    def close(self) -> None:
        self.open = False


class FakeSource:
    """In-memory stand-in for KokoDatabase."""

    def __init__(self, rows: list[KokoRow], fail_conn: BaseException | None = None) -> None:
        self.rows = sorted(rows, key=lambda r: r.no)
        self.fail_conn = fail_conn
        self.fetches: list[tuple[int | None, int]] = []
        self.closed = False

    def test_conn(self) -> None:
        if self.fail_conn is not None:
            raise self.fail_conn

    def fetch_rows(self, after_no: int | None, max_rows: int) -> list[KokoRow]:
        self.fetches.append((after_no, max_rows))
        return [r for r in self.rows if r.no > (after_no or 0)][:max_rows]

    def count_rows(self, after_no: int | None = None) -> int:
        return len([r for r in self.rows if r.no > (after_no or 0)])

    def close(self) -> None:
        self.closed = True


class FakeTarget:
    """In-memory stand-in for VichanDatabase; ids auto-increment per post."""

    def __init__(self, first_id: int = 100, fail_on_batch: int | None = None) -> None:
        self.next_id = first_id
        self.fail_on_batch = fail_on_batch
        self.batches: list[list] = []
        self.closed = False

    def test_conn(self) -> None:
        pass

    def insert_posts(self, posts: list) -> int:
        if self.fail_on_batch is not None and len(self.batches) == self.fail_on_batch:
            raise RuntimeError("insert failed")
        self.batches.append(list(posts))
        first = self.next_id
        self.next_id += len(posts)
        return first

    @property
    def posts(self) -> list:
        return [p for batch in self.batches for p in batch]

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def progress_path(tmp_path: Path) -> Path:
    return tmp_path / "progress.json"


@pytest.fixture
def cfg(progress_path: Path) -> MigratorConfig:
    return MigratorConfig(
        board_mappings={"b": "b"},
        rows_per_iteration=10,
        progress_path=str(progress_path),
        copy_media=False,
    )

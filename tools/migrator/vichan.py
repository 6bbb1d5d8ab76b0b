"""vichan target store – batched inserts into ``posts_<board>``."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Sequence

import pymysql

from .config import VichanConfig
from .errors import ConnectivityError
from .media import FileDescriptor

logger = logging.getLogger("migrator.vichan")

POST_COLUMNS: tuple[str, ...] = (
    "thread", "subject", "email", "name", "trip", "body", "body_nomarkup",
    "time", "bump", "files", "num_files", "filehash", "password", "ip",
    "slug", "sticky", "locked", "cycle", "sage",
)


@dataclass(frozen=True)
class VichanPost:
    """One row for ``posts_<board>``, ready to insert."""
    thread: int | None
    subject: str | None
    email: str | None
    name: str
    trip: str | None
    body: str
    body_nomarkup: str
    time: int
    bump: int
    file: FileDescriptor | None = None
    password: str | None = None
    ip: str | None = None
    slug: str | None = None

    def values(self) -> tuple[Any, ...]:
        files = [self.file.to_vichan()] if self.file else []
        return (
            self.thread,
            self.subject,
            self.email,
            self.name,
            self.trip,
            self.body,
            self.body_nomarkup,
            self.time,
            self.bump,
            json.dumps(files, separators=(",", ":"), ensure_ascii=False) if files else None,
            len(files),
            self.file.hash if self.file else None,
            self.password,
            self.ip or "",  # NOT NULL column
            self.slug,
            0,  # sticky
            0,  # locked
            0,  # cycle
            0,  # sage
        )


class VichanDatabase:
    """MariaDB interface to one vichan board."""

    def __init__(self, cfg: VichanConfig, board: str) -> None:
        self.cfg = cfg
        self.board = board
        self._conn: pymysql.connections.Connection | None = None

    @property
    def table(self) -> str:
        return f"`{self.cfg.database}`.`posts_{self.board}`"

    @property
    def conn(self) -> pymysql.connections.Connection:
        if self._conn is None or not self._conn.open:
            self._conn = pymysql.connect(**self.cfg.db.connect_kwargs(), autocommit=False)
        return self._conn

    def test_conn(self) -> None:
        try:
            with self.conn.cursor() as cur:
                cur.execute("SELECT 1")
                cur.fetchone()
        except pymysql.MySQLError as exc:
            logger.error("Failed to connect to vichan database for /%s/", self.board)
            raise ConnectivityError("vichan", exc) from exc

    # ── inserts ──────────────────────────────────────────────────

    def insert_posts(self, posts: Sequence[VichanPost]) -> int:
        """Insert *posts* in one statement and commit.

        Returns the generated id of the first inserted row, which for a batch
        holding a single thread post is the new thread id.
        """
        if not posts:
            raise ValueError("insert_posts() needs at least one post")
        row_sql = "(" + ", ".join(["%s"] * len(POST_COLUMNS)) + ")"
        sql = (
            f"INSERT INTO {self.table} ({', '.join(POST_COLUMNS)}) VALUES "
            + ", ".join([row_sql] * len(posts))
        )
        params: list[Any] = []
        for post in posts:
            params.extend(post.values())

        try:
            with self.conn.cursor() as cur:
                cur.execute(sql, params)
                new_id = int(cur.lastrowid)
            self.conn.commit()
        except pymysql.MySQLError:
            self.conn.rollback()
            raise
        logger.debug("Inserted %d posts into %s (first id %d)", len(posts), self.table, new_id)
        return new_id

    # ── lifecycle ────────────────────────────────────────────────

    def close(self) -> None:
        if self._conn is not None and self._conn.open:
            self._conn.close()

    def __enter__(self) -> VichanDatabase:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

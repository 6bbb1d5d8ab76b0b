"""Kokonotsuba source reader – ordered pages of ``imglog`` rows."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import pymysql
import pymysql.cursors

from .config import KokoConfig
from .errors import ConnectivityError

logger = logging.getLogger("migrator.koko")


def _str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class KokoRow:
    """One post from a koko ``imglog`` table."""
    no: int
    resto: int
    time: int
    com: str = ""
    name: str = ""
    email: str = ""
    sub: str = ""
    pwd: str = ""
    host: str = ""
    md5chksum: str = ""
    tim: int = 0
    fname: str = ""
    ext: str = ""
    imgw: int = 0
    imgh: int = 0
    imgsize: str = ""
    tw: int = 0
    th: int = 0

    @property
    def is_thread(self) -> bool:
        return self.resto <= 0

    @property
    def has_file(self) -> bool:
        return bool(self.md5chksum)

    @classmethod
    def from_db(cls, row: dict[str, Any]) -> KokoRow:
        return cls(
            no=int(row["no"]),
            resto=_int(row.get("resto")),
            time=_int(row.get("time")),
            com=_str(row.get("com")),
            name=_str(row.get("name")),
            email=_str(row.get("email")),
            sub=_str(row.get("sub")),
            pwd=_str(row.get("pwd")),
            host=_str(row.get("host")),
            md5chksum=_str(row.get("md5chksum")),
            tim=_int(row.get("tim")),
            fname=_str(row.get("fname")),
            ext=_str(row.get("ext")),
            imgw=_int(row.get("imgw")),
            imgh=_int(row.get("imgh")),
            imgsize=_str(row.get("imgsize")),
            tw=_int(row.get("tw")),
            th=_int(row.get("th")),
        )


class KokoDatabase:
    """Read-only MariaDB interface to one koko board."""

    def __init__(self, cfg: KokoConfig, board: str) -> None:
        self.cfg = cfg
        self.board = board
        self._conn: pymysql.connections.Connection | None = None

    @property
    def table(self) -> str:
        return f"`{self.cfg.db_name_prefix}{self.board}`.imglog"

    @property
    def conn(self) -> pymysql.connections.Connection:
        if self._conn is None or not self._conn.open:
            self._conn = pymysql.connect(
                **self.cfg.db.connect_kwargs(),
                cursorclass=pymysql.cursors.DictCursor,
                autocommit=True,
            )
        return self._conn

    def test_conn(self) -> None:
        """Run ``SELECT 1``; any driver error becomes a fatal ConnectivityError."""
        try:
            with self.conn.cursor() as cur:
                cur.execute("SELECT 1")
                cur.fetchone()
        except pymysql.MySQLError as exc:
            logger.error("Failed to connect to koko database for /%s/", self.board)
            raise ConnectivityError("koko", exc) from exc

    # ── reads ────────────────────────────────────────────────────

    def fetch_rows(self, after_no: int | None, max_rows: int) -> list[KokoRow]:
        """Fetch up to *max_rows* posts with ``no > after_no``, ascending.

        ``after_no`` of 0 or None starts from the beginning.
        """
        sql = f"SELECT * FROM {self.table}"
        params: list[int] = []
        if after_no:
            sql += " WHERE no > %s"
            params.append(after_no)
        sql += " ORDER BY no ASC LIMIT %s"
        params.append(max_rows)

        with self.conn.cursor() as cur:
            cur.execute(sql, params)
            rows = [KokoRow.from_db(r) for r in cur.fetchall()]
        logger.debug("Fetched %d rows from %s after no. %s", len(rows), self.table, after_no or 0)
        return rows

    def count_rows(self, after_no: int | None = None) -> int:
        sql = f"SELECT COUNT(*) AS n FROM {self.table}"
        params: list[int] = []
        if after_no:
            sql += " WHERE no > %s"
            params.append(after_no)
        with self.conn.cursor() as cur:
            cur.execute(sql, params)
            row = cur.fetchone()
        return int(row["n"]) if row else 0

    # ── lifecycle ────────────────────────────────────────────────

    def close(self) -> None:
        if self._conn is not None and self._conn.open:
            self._conn.close()

    def __enter__(self) -> KokoDatabase:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

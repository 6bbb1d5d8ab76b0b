"""Core migration logic – orchestrates koko → media → vichan → progress."""

from __future__ import annotations

import logging
import os
from typing import Callable, Sequence

from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from .config import KokoConfig, MigratorConfig, VichanConfig
from .errors import MigrationError
from .koko import KokoDatabase, KokoRow
from .markup import MarkupContext, transform_post
from .media import MediaCopier, PathExists, build_file_descriptor, copy_board_files, image_dimensions
from .progress import BoardProgress, ProgressStore
from .threads import ThreadMap, is_root_batch, split_threads
from .vichan import VichanDatabase, VichanPost

logger = logging.getLogger("migrator.core")

SourceFactory = Callable[[KokoConfig, str], KokoDatabase]
TargetFactory = Callable[[VichanConfig, str], VichanDatabase]


class Migrator:
    """Orchestrates the full koko → vichan migration, one board at a time."""

    def __init__(
        self,
        cfg: MigratorConfig,
        *,
        progress: ProgressStore | None = None,
        source_factory: SourceFactory = KokoDatabase,
        target_factory: TargetFactory = VichanDatabase,
        exists: PathExists = os.path.exists,
        measure: Callable[[str], tuple[int, int] | None] | None = image_dimensions,
    ) -> None:
        self.cfg = cfg
        self._progress = progress
        self.source_factory = source_factory
        self.target_factory = target_factory
        self.exists = exists
        self.measure = measure
        # Stats
        self.stats = {"boards": 0, "threads": 0, "posts": 0, "files": 0, "missing": 0, "skipped": 0}

    @property
    def progress(self) -> ProgressStore:
        if self._progress is None:
            self._progress = ProgressStore.load(self.cfg.progress_path)
        return self._progress

    # ── post mapping ─────────────────────────────────────────────

    def _map_post(self, row: KokoRow, vichan_board: str, threads: ThreadMap) -> VichanPost:
        """Convert a koko row into a vichan post for ``vichan_board``."""
        ctx = MarkupContext(board=vichan_board, resto=row.resto, threads=threads)
        text = transform_post(
            com=row.com,
            name=row.name,
            subject=row.sub,
            email=row.email,
            password=row.pwd,
            ip=row.host,
            ctx=ctx,
        )

        thread: int | None = None
        if not row.is_thread:
            thread = threads.resolve(row.resto)
            if thread is None:
                logger.warning(
                    "Post no. %d replies to thread no. %d which was never migrated; inserting it without a parent",
                    row.no, row.resto,
                )

        file = None
        if row.has_file:
            file = build_file_descriptor(
                row,
                vichan_board,
                self.cfg.vichan.thumb_dir(vichan_board),
                exists=self.exists,
                measure=self.measure,
            )

        return VichanPost(
            thread=thread,
            subject=text.subject,
            email=text.email,
            name=text.name,
            trip=text.trip,
            body=text.body,
            body_nomarkup=text.body_nomarkup,
            time=row.time,
            bump=row.time,
            file=file,
            password=text.password,
            ip=text.ip,
            slug=text.slug,
        )

    # ── page insertion ───────────────────────────────────────────

    def insert_page(
        self,
        rows: Sequence[KokoRow],
        target: VichanDatabase,
        threads: ThreadMap,
        vichan_board: str,
    ) -> None:
        """Insert one fetched page, batch by batch, in order.

        Rows are mapped just before their batch is inserted so replies can
        resolve threads created earlier in the same page.
        """
        for batch in split_threads(rows):
            posts = [self._map_post(row, vichan_board, threads) for row in batch]
            new_id = target.insert_posts(posts)
            if is_root_batch(batch):
                threads.record(batch[0].no, new_id)
                self.stats["threads"] += 1
            self.stats["posts"] += len(batch)

    # ── board migration ──────────────────────────────────────────

    def migrate_board(self, koko_board: str, vichan_board: str) -> int:
        """Migrate one koko board into a vichan board, resuming from its checkpoint.

        Returns the number of posts migrated during this call.
        """
        existing = self.progress.get(koko_board)
        if existing is not None and existing.completed:
            logger.info("Skipping already migrated koko board %s", koko_board)
            return 0

        prog = self.progress.board(koko_board)
        if prog.post_no > 0:
            logger.info("Resuming migration of koko board %s from post no. %d...", koko_board, prog.post_no)
        else:
            logger.info("Beginning migration of koko board %s...", koko_board)

        source = self.source_factory(self.cfg.koko, koko_board)
        target = self.target_factory(self.cfg.vichan, vichan_board)
        try:
            source.test_conn()
            target.test_conn()
            migrated = self._run_board(source, target, prog, koko_board, vichan_board)
        finally:
            source.close()
            target.close()

        prog.complete()
        self.progress.save()
        self.stats["boards"] += 1
        logger.info(
            "Successfully migrated %d posts from koko board %s to vichan board %s",
            migrated, koko_board, vichan_board,
        )
        return migrated

    def _run_board(
        self,
        source: KokoDatabase,
        target: VichanDatabase,
        prog: BoardProgress,
        koko_board: str,
        vichan_board: str,
    ) -> int:
        page_size = self.cfg.rows_per_iteration
        copier = MediaCopier(self.cfg.koko, self.cfg.vichan, koko_board, vichan_board) if self.cfg.copy_media else None
        total = source.count_rows(prog.post_no)
        migrated = 0

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
        ) as progress:
            task = progress.add_task(f"/{koko_board}/ → /{vichan_board}/", total=total)
            try:
                while True:
                    rows = source.fetch_rows(prog.post_no, page_size)
                    if rows:
                        if rows[0].no <= prog.post_no:
                            raise MigrationError(
                                f"Source returned post no. {rows[0].no} at or before cursor {prog.post_no}"
                            )
                        if copier is not None:
                            for row in rows:
                                if row.has_file:
                                    copier.copy_row(row)

                        self.insert_page(rows, target, prog.threads, vichan_board)
                        prog.advance(rows[-1].no)
                        self.progress.save()
                        migrated += len(rows)
                        logger.info("Migrated post no. %d-%d...", rows[0].no, rows[-1].no)
                        progress.advance(task, len(rows))

                    if len(rows) < page_size:
                        break
            finally:
                if copier is not None:
                    for key, val in copier.stats.items():
                        self.stats[key] += val
        return migrated

    # ── all boards ───────────────────────────────────────────────

    def migrate_all(self) -> dict[str, int]:
        """Migrate every mapped board in declared order; any fatal error stops the run."""
        results = {}
        for koko_board, vichan_board in self.cfg.board_mappings.items():
            results[koko_board] = self.migrate_board(koko_board, vichan_board)
        logger.info("All board migrations are complete")
        return results


def copy_files(cfg: MigratorConfig) -> dict[str, int]:
    """Bulk-copy media for every mapped board.  Not resumable, touches no checkpoints."""
    results = {}
    for koko_board, vichan_board in cfg.board_mappings.items():
        count = copy_board_files(
            cfg.koko.src_dir(koko_board),
            cfg.vichan.src_dir(vichan_board),
            cfg.vichan.thumb_dir(vichan_board),
        )
        logger.info(
            "Successfully copied %d files from koko board %s to vichan board %s",
            count, koko_board, vichan_board,
        )
        results[koko_board] = count
    return results

"""Media handling – file descriptors, thumbnail probing and copying into vichan."""

from __future__ import annotations

import logging
import math
import mimetypes
import os
import re
import shutil
from dataclasses import dataclass
from typing import Any, Callable

from PIL import Image, UnidentifiedImageError

from .config import KokoConfig, VichanConfig
from .koko import KokoRow

logger = logging.getLogger("migrator.media")

# MD5 of zero bytes, used when koko has no checksum on record
EMPTY_FILE_HASH = "d41d8cd98f00b204e9800998ecf8427e"

# Koko writes thumbnails as <tim>s.<ext>; probed in this order
THUMB_EXTS: tuple[str, ...] = ("gif", "jpg", "jpeg", "jfif", "png")

SIZE_UNITS: dict[str, int] = {
    "b": 1,
    "kb": 1024,
    "mb": 1024 * 1024,
    "gb": 1024 * 1024 * 1024,
}

# Map file extension → MIME type
MIME_MAP: dict[str, str] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "jfif": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webm": "video/webm",
    "mp4": "video/mp4",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "pdf": "application/pdf",
    "swf": "application/x-shockwave-flash",
}

KOKO_THUMB_RE = re.compile(r"s\.(\w+)$")

# Stands in for the upload temp path vichan expects in its files JSON
MIGRATED_TMP_NAME = "/tmp/_migrated_from_koko"

PathExists = Callable[[str], bool]


# ── pure helpers ─────────────────────────────────────────────────


def parse_size(size: str | None) -> int:
    """Convert koko's ``"<number> <unit>"`` size string into bytes.

    Missing units mean bytes.  Anything unparseable, unknown or negative is 0.
    """
    if not size:
        return 0
    parts = size.strip().split(None, 1)
    if not parts:
        return 0
    try:
        number = float(parts[0])
    except ValueError:
        return 0
    if len(parts) > 1:
        factor = SIZE_UNITS.get(parts[1].strip().lower())
        if factor is None:
            return 0
        number *= factor
    if not math.isfinite(number) or number < 0:
        return 0
    return int(round(number))


def guess_mime(ext: str) -> str:
    ext = ext.lower().lstrip(".")
    if ext in MIME_MAP:
        return MIME_MAP[ext]
    guessed, _ = mimetypes.guess_type(f"file.{ext}")
    return guessed or "application/octet-stream"


def resolve_thumb_ext(thumb_dir: str, tim: int, fallback: str, exists: PathExists = os.path.exists) -> str:
    """Return the first thumbnail extension present in *thumb_dir*, else *fallback*."""
    for ext in THUMB_EXTS:
        if exists(f"{thumb_dir}/{tim}.{ext}"):
            return ext
    return fallback


def image_dimensions(path: str) -> tuple[int, int] | None:
    try:
        with Image.open(path) as img:
            return img.width, img.height
    except (OSError, UnidentifiedImageError):
        return None


# ── file descriptor ──────────────────────────────────────────────


@dataclass(frozen=True)
class FileDescriptor:
    name: str
    mime_type: str
    size: int
    extension: str
    thumb_ext: str
    tim: int
    file: str
    hash: str
    width: int
    height: int
    thumb_width: int
    thumb_height: int
    file_path: str
    thumb_path: str

    @property
    def thumb(self) -> str:
        return f"{self.tim}.{self.thumb_ext}"

    def to_vichan(self) -> dict[str, Any]:
        """The entry vichan stores in ``posts_<board>.files``."""
        return {
            "name": self.name,
            "type": self.mime_type,
            "tmp_name": MIGRATED_TMP_NAME,
            "error": 0,
            "size": self.size,
            "filename": self.name,
            "extension": self.extension,
            "file_id": self.tim,
            "file": self.file,
            "thumb": self.thumb,
            "is_an_image": True,
            "hash": self.hash,
            "thumbwidth": self.thumb_width,
            "thumbheight": self.thumb_height,
            "file_path": self.file_path,
            "thumb_path": self.thumb_path,
            "width": self.width,
            "height": self.height,
        }


def build_file_descriptor(
    row: KokoRow,
    board: str,
    thumb_dir: str,
    *,
    exists: PathExists = os.path.exists,
    measure: Callable[[str], tuple[int, int] | None] | None = None,
) -> FileDescriptor:
    """Describe the attachment of *row* as vichan expects it.

    *board* is the vichan board; *thumb_dir* is that board's thumbnail directory
    and is probed through *exists* for the extension the thumbnail really has.
    When the row carries no thumbnail dimensions, *measure* may read them from
    the resolved thumbnail.
    """
    ext = row.ext.lstrip(".")
    thumb_ext = resolve_thumb_ext(thumb_dir, row.tim, ext, exists)
    tw, th = row.tw, row.th
    if (not tw or not th) and measure is not None:
        thumb_file = f"{thumb_dir}/{row.tim}.{thumb_ext}"
        if exists(thumb_file):
            dims = measure(thumb_file)
            if dims:
                tw, th = dims
    return FileDescriptor(
        name=row.fname + row.ext,
        mime_type=guess_mime(ext),
        size=parse_size(row.imgsize),
        extension=ext,
        thumb_ext=thumb_ext,
        tim=row.tim,
        file=f"{row.tim}{row.ext}",
        hash=row.md5chksum or EMPTY_FILE_HASH,
        width=row.imgw,
        height=row.imgh,
        thumb_width=tw,
        thumb_height=th,
        file_path=f"{board}/src/{row.tim}{row.ext}",
        thumb_path=f"{board}/thumb/{row.tim}.{thumb_ext}",
    )


# ── copying ──────────────────────────────────────────────────────


def copy_if_missing(src: str, target: str) -> bool:
    """Copy *src* to *target* unless the target exists.  Returns True if copied."""
    if os.path.exists(target):
        return False
    shutil.copyfile(src, target)
    return True


class MediaCopier:
    """Copy one koko board's images and thumbnails into a vichan board."""

    def __init__(self, koko: KokoConfig, vichan: VichanConfig, koko_board: str, vichan_board: str) -> None:
        self.koko_src = koko.src_dir(koko_board)
        self.vichan_src = vichan.src_dir(vichan_board)
        self.vichan_thumb = vichan.thumb_dir(vichan_board)
        self.stats = {"files": 0, "missing": 0, "skipped": 0}

    def copy_row(self, row: KokoRow) -> None:
        """Copy the image and any thumbnail variants for *row*.

        Missing sources are logged and counted; they never fail the row.
        """
        src = f"{self.koko_src}/{row.tim}{row.ext}"
        target = f"{self.vichan_src}/{row.tim}{row.ext}"
        if os.path.exists(src):
            if copy_if_missing(src, target):
                self.stats["files"] += 1
            else:
                self.stats["skipped"] += 1
        elif os.path.exists(target):
            self.stats["skipped"] += 1
        else:
            logger.warning("Could not find image file at %s, so it was not copied", src)
            self.stats["missing"] += 1

        found_thumb = False
        for ext in THUMB_EXTS:
            thumb_src = f"{self.koko_src}/{row.tim}s.{ext}"
            thumb_target = f"{self.vichan_thumb}/{row.tim}.{ext}"
            if os.path.exists(thumb_src):
                found_thumb = True
                copy_if_missing(thumb_src, thumb_target)
            elif os.path.exists(thumb_target):
                found_thumb = True

        if not found_thumb:
            logger.warning(
                "Could not find image thumbnail for post no. %d, so it was not copied "
                "(try the copy-files command to force-copy everything)",
                row.no,
            )
            self.stats["missing"] += 1


def copy_board_files(koko_src_dir: str, vichan_src_dir: str, vichan_thumb_dir: str) -> int:
    """Bulk-copy every file in a koko ``src`` directory into a vichan board.

    Koko thumbnails (``<tim>s.<ext>``) land in the thumb directory as
    ``<tim>.<ext>``; everything else goes to the src directory.  Returns the
    number of entries visited.
    """
    count = 0
    with os.scandir(koko_src_dir) as entries:
        for entry in sorted(entries, key=lambda e: e.name):
            if KOKO_THUMB_RE.search(entry.name):
                thumb_name = KOKO_THUMB_RE.sub(r".\1", entry.name)
                target = f"{vichan_thumb_dir}/{thumb_name}"
            else:
                target = f"{vichan_src_dir}/{entry.name}"

            if os.path.exists(target):
                logger.debug("Skipping already copied file from %s to %s", entry.path, target)
            elif entry.is_file():
                logger.debug("Copying %s to %s...", entry.path, target)
                shutil.copyfile(entry.path, target)
            else:
                logger.info("Skipping non-file path %s", entry.path)
            count += 1
    return count

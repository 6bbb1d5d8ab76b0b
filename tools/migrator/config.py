"""Configuration and environment settings for the migrator."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigError


@dataclass(frozen=True)
class DatabaseConfig:
    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = ""
    database: str | None = None
    charset: str = "utf8mb4"
    connect_timeout: int = 10

    def connect_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``pymysql.connect``."""
        kwargs: dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password,
            "charset": self.charset,
            "connect_timeout": self.connect_timeout,
        }
        if self.database:
            kwargs["database"] = self.database
        return kwargs

    @classmethod
    def from_dict(cls, data: dict[str, Any], env_prefix: str) -> DatabaseConfig:
        """Build from a ``mariadb`` config block; ``<PREFIX>_DB_*`` env vars win."""
        try:
            port = int(os.getenv(f"{env_prefix}_DB_PORT", data.get("port", 3306)))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{env_prefix.lower()} database port is not a number: {exc}") from exc
        return cls(
            host=os.getenv(f"{env_prefix}_DB_HOST", data.get("host", "localhost")),
            port=port,
            user=os.getenv(f"{env_prefix}_DB_USER", data.get("user", "root")),
            password=os.getenv(f"{env_prefix}_DB_PASSWORD", data.get("password", "")),
            database=os.getenv(f"{env_prefix}_DB_NAME", data.get("database")),
        )

    @classmethod
    def from_env(cls, env_prefix: str) -> DatabaseConfig:
        return cls.from_dict({}, env_prefix)


@dataclass(frozen=True)
class KokoConfig:
    """Source side: one database per board named ``<db_name_prefix><board>``."""
    db: DatabaseConfig = field(default_factory=lambda: DatabaseConfig.from_env("KOKO"))
    db_name_prefix: str = ""
    base_path: str = "/var/www/koko"

    def src_dir(self, board: str) -> str:
        return f"{self.base_path}/{board}/src"


@dataclass(frozen=True)
class VichanConfig:
    """Target side: a single database holding ``posts_<board>`` tables."""
    db: DatabaseConfig = field(default_factory=lambda: DatabaseConfig.from_env("VICHAN"))
    instance_path: str = "/var/www/vichan"

    @property
    def database(self) -> str:
        return self.db.database or "vichan"

    def src_dir(self, board: str) -> str:
        return f"{self.instance_path}/{board}/src"

    def thumb_dir(self, board: str) -> str:
        return f"{self.instance_path}/{board}/thumb"


@dataclass
class MigratorConfig:
    koko: KokoConfig = field(default_factory=KokoConfig)
    vichan: VichanConfig = field(default_factory=VichanConfig)
    board_mappings: dict[str, str] = field(default_factory=dict)
    rows_per_iteration: int = 100
    progress_path: str = "progress.json"
    copy_media: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any], **overrides: Any) -> MigratorConfig:
        koko = data.get("koko") or {}
        vichan = data.get("vichan") or {}
        mappings = data.get("kokoToVichanBoardMappings")
        if not isinstance(mappings, dict) or not mappings:
            raise ConfigError("kokoToVichanBoardMappings must map at least one koko board to a vichan board")

        try:
            rows = int(data.get("rowsPerIteration", 100))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"rowsPerIteration is not a number: {exc}") from exc
        if rows < 1:
            raise ConfigError("rowsPerIteration must be at least 1")

        return cls(
            koko=KokoConfig(
                db=DatabaseConfig.from_dict(koko.get("mariadb") or {}, "KOKO"),
                db_name_prefix=koko.get("dbNamePrefix", ""),
                base_path=str(koko.get("basePath", "/var/www/koko")).rstrip("/"),
            ),
            vichan=VichanConfig(
                db=DatabaseConfig.from_dict(vichan.get("mariadb") or {}, "VICHAN"),
                instance_path=str(vichan.get("instancePath", "/var/www/vichan")).rstrip("/"),
            ),
            board_mappings={str(k): str(v) for k, v in mappings.items()},
            rows_per_iteration=rows,
            **overrides,
        )

    @classmethod
    def from_file(cls, path: str | os.PathLike[str], **overrides: Any) -> MigratorConfig:
        p = Path(path)
        if not p.is_file():
            raise ConfigError(f"Config file {p} not found (copy config.example.json and edit it)")
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ConfigError(f"Could not read config file {p}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {p} must contain a JSON object")
        return cls.from_dict(data, **overrides)

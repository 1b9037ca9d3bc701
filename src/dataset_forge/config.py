import logging
import os
from dataclasses import dataclass

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


@dataclass(frozen=True)
class Settings:
    """Runtime settings shared by the CLI and the engines.

    - logs_dir / log_file: where the JSONL event log goes
    - log_max_bytes / log_backup_count: rotation parameters
    - timezone: used for log timestamps and snapshot rendering
    - chunk_size: write granularity for generated file content
    """

    logs_dir: str = "logs"
    log_file: str = "dataset_forge.jsonl"
    log_level: int = logging.INFO
    log_max_bytes: int = 10 * 1024 * 1024
    log_backup_count: int = 5
    timezone: str = "UTC"
    chunk_size: int = 1024 * 1024

    @property
    def log_path(self) -> str:
        return os.path.join(self.logs_dir, self.log_file)

    @classmethod
    def from_env(cls) -> "Settings":
        level = os.environ.get("DSFORGE_LOG_LEVEL", "INFO").strip().upper()
        return cls(
            logs_dir=os.environ.get("DSFORGE_LOGS_DIR", cls.logs_dir),
            log_level=_LEVELS.get(level, logging.INFO),
            timezone=os.environ.get("DSFORGE_TIMEZONE", cls.timezone),
        )


DEFAULT_SETTINGS = Settings()

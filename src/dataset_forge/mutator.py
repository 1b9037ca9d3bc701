"""Mutation Engine: simulate churn on an existing dataset.

A fraction of the files in a scan is picked without replacement. Each picked
file is either backdated (all timestamps set to one moment) or has its content
rewritten from offset 0 with fresh random bytes.
"""
import math
import os
import random
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import pendulum
import structlog

from .builder import ByteSource, parse_file_size, to_ns
from .config import DEFAULT_SETTINGS
from .errors import InvalidPercentage
from .reporter import Reporter
from .scanner import ScanEntry, load_snapshot, scan

log = structlog.get_logger(__name__)

PERC_FILES_RANGE = (1, 100)
PERC_DATA_RANGE = (0, 150)
RESTORE_PERCENT = 100


@dataclass
class MutationResult:
    selected: int = 0
    rewritten: int = 0
    backdated: int = 0
    bytes_written: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)


def _check_range(name: str, value: int, bounds: Tuple[int, int]) -> None:
    lo, hi = bounds
    if not lo <= value <= hi:
        raise InvalidPercentage(
            f"{name} must be between {lo} and {hi}, got {value}"
        )


def select_files(
    entries: Sequence[ScanEntry], perc_files: int, rng: random.Random
) -> List[ScanEntry]:
    """Pick ceil(n * perc_files / 100) distinct file entries uniformly."""
    _check_range("percFiles", perc_files, PERC_FILES_RANGE)
    files = [e for e in entries if e.is_file]
    count = math.ceil(len(files) * perc_files / 100)
    return [files[i] for i in rng.sample(range(len(files)), count)]


def change_bytes(entry: ScanEntry, perc_data: int) -> int:
    if perc_data == RESTORE_PERCENT:
        try:
            return parse_file_size(entry.name)
        except ValueError:
            log.warning("size_not_in_name", path=entry.path, size=entry.size)
            return entry.size
    return entry.size * perc_data // 100


class Mutator:
    def __init__(
        self,
        perc_files: int,
        perc_data: int = 0,
        backdate: Optional[pendulum.DateTime] = None,
        rng: Optional[random.Random] = None,
        byte_source: ByteSource = os.urandom,
        reporter: Optional[Reporter] = None,
        chunk_size: int = DEFAULT_SETTINGS.chunk_size,
    ):
        _check_range("percFiles", perc_files, PERC_FILES_RANGE)
        _check_range("percData", perc_data, PERC_DATA_RANGE)
        self.perc_files = perc_files
        self.perc_data = perc_data
        self.backdate = backdate
        self.rng = rng or random.Random()
        self.byte_source = byte_source
        self.reporter = reporter or Reporter()
        self.chunk_size = chunk_size

    def _rewrite(self, entry: ScanEntry) -> int:
        length = change_bytes(entry, self.perc_data)
        if length <= 0:
            return 0
        remaining = length
        with open(entry.path, "r+b") as f:
            while remaining > 0:
                chunk = self.byte_source(min(remaining, self.chunk_size))
                f.write(chunk)
                remaining -= len(chunk)
            if self.perc_data == RESTORE_PERCENT:
                f.truncate(length)
        return length

    def _backdate(self, entry: ScanEntry) -> None:
        stamp = to_ns(self.backdate)
        os.utime(entry.path, ns=(stamp, stamp))

    def mutate(self, entries: Sequence[ScanEntry]) -> MutationResult:
        # sampling completes before any file is touched
        selected = select_files(entries, self.perc_files, self.rng)
        result = MutationResult(selected=len(selected))
        log.info(
            "mutation_started",
            selected=len(selected),
            perc_files=self.perc_files,
            perc_data=self.perc_data,
            backdate=self.backdate.isoformat() if self.backdate else None,
        )
        self.reporter.start(len(selected), "Mutating files")
        try:
            for entry in selected:
                try:
                    if self.backdate is not None:
                        self._backdate(entry)
                        result.backdated += 1
                    else:
                        written = self._rewrite(entry)
                        if written:
                            result.rewritten += 1
                            result.bytes_written += written
                except OSError as exc:
                    result.failures.append((entry.path, str(exc)))
                    log.error(
                        "mutation_failed", path=entry.path, error=str(exc)
                    )
                    self.reporter.message(
                        f"Failed: {entry.path}: {exc}", "red"
                    )
                self.reporter.advance()
        finally:
            self.reporter.finish()

        log.info(
            "mutation_finished",
            rewritten=result.rewritten,
            backdated=result.backdated,
            bytes_written=result.bytes_written,
            failures=len(result.failures),
        )
        return result


def mutate_tree(
    root: str,
    perc_files: int,
    perc_data: int = 0,
    snapshot: Optional[str] = None,
    **kwargs,
) -> MutationResult:
    """Mutate the files under ``root``.

    With ``snapshot`` the entries come from a saved scan instead of a fresh
    one, so the same file population can be churned repeatedly.
    """
    mutator = Mutator(perc_files, perc_data, **kwargs)
    entries = load_snapshot(snapshot) if snapshot else scan(root)
    return mutator.mutate(entries)

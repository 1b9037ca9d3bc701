"""Tree Builder: turn a DatasetSpec into a directory tree of random files.

Layout under the destination root::

    d<tag>-0001/            one directory per depth level
        w<tag>-0001/        foldersWidth directories per depth level
            000100010240.file
            000204001337.file

File names are ``{sequence:04d}{size:0Nd}.file`` where N is the number of
digits of ``max_file_size``, so the size a file was created with can be read
back from its name alone.
"""
import os
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from .config import DEFAULT_SETTINGS
from .errors import IOFailure
from .estimator import SizeBudget, estimate
from .reporter import Reporter
from .spec import DatasetSpec

log = structlog.get_logger(__name__)

FILE_SUFFIX = ".file"
SEQUENCE_DIGITS = 4

ByteSource = Callable[[int], bytes]


def file_name(sequence: int, size: int, max_file_size: int) -> str:
    width = len(str(max_file_size))
    return f"{sequence:0{SEQUENCE_DIGITS}d}{size:0{width}d}{FILE_SUFFIX}"


def parse_file_size(name: str) -> int:
    """Return the size encoded in a generated file name."""
    if not name.endswith(FILE_SUFFIX):
        raise ValueError(f"Not a generated file name: {name!r}")
    digits = name[SEQUENCE_DIGITS:-len(FILE_SUFFIX)]
    if not digits.isdigit():
        raise ValueError(f"Not a generated file name: {name!r}")
    return int(digits)


def to_ns(moment) -> int:
    return round(moment.timestamp() * 1_000_000) * 1000


class TagClock:
    """Strictly increasing, time-derived tags for directory names."""

    def __init__(self, now_ns: Callable[[], int] = time.time_ns):
        self._now_ns = now_ns
        self._last = 0

    def __call__(self) -> int:
        tag = max(self._now_ns() // 1000, self._last + 1)
        self._last = tag
        return tag


@dataclass
class BuildResult:
    total_size: int = 0
    file_count: int = 0
    dir_count: int = 0
    levels: int = 0
    max_file_count: int = 0


class TreeBuilder:
    def __init__(
        self,
        spec: DatasetSpec,
        root: str,
        estimate_only: bool = False,
        fill_to_max_size: bool = False,
        rng: Optional[random.Random] = None,
        byte_source: ByteSource = os.urandom,
        tag_clock: Optional[Callable[[], int]] = None,
        reporter: Optional[Reporter] = None,
        chunk_size: int = DEFAULT_SETTINGS.chunk_size,
    ):
        self.spec = spec
        self.root = os.path.abspath(root)
        self.estimate_only = estimate_only
        self.fill_to_max_size = fill_to_max_size
        self.rng = rng or random.Random()
        self.byte_source = byte_source
        self.tag_clock = tag_clock or TagClock()
        self.reporter = reporter or Reporter()
        self.chunk_size = chunk_size
        self.budget: SizeBudget = estimate(spec)

    # -- random draws -------------------------------------------------------

    def _files_in_dir(self) -> int:
        if self.spec.max_files_per_dir == 1:
            return 1
        return self.rng.randrange(1, self.spec.max_files_per_dir)

    def _file_size(self) -> int:
        lo, hi = self.spec.min_file_size, self.spec.max_file_size
        if lo == hi:
            return lo
        return self.rng.randrange(lo, hi)

    def _timestamp_ns(self) -> int:
        lo = to_ns(self.spec.min_date)
        hi = to_ns(self.spec.max_date)
        return self.rng.randrange(lo, hi)

    # -- filesystem ---------------------------------------------------------

    def _make_dir(self, path: str) -> None:
        if self.estimate_only or os.path.isdir(path):
            return
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as exc:
            raise IOFailure(
                f"Cannot create directory {path}: {exc}", path
            ) from exc

    def _write_file(self, path: str, size: int) -> None:
        remaining = size
        try:
            with open(path, "wb") as f:
                while remaining > 0:
                    chunk = self.byte_source(min(remaining, self.chunk_size))
                    f.write(chunk)
                    remaining -= len(chunk)
        except OSError as exc:
            raise IOFailure(f"Cannot write file {path}: {exc}", path) from exc

    def _stamp(self, stamp_ns: int, *paths: str) -> None:
        for path in paths:
            try:
                os.utime(path, ns=(stamp_ns, stamp_ns))
            except OSError as exc:
                raise IOFailure(
                    f"Cannot set timestamps on {path}: {exc}", path
                ) from exc

    # -- main loop ----------------------------------------------------------

    def _at_capacity(self, result: BuildResult) -> bool:
        if self.spec.max_file_size == 0:
            return result.file_count >= self.budget.max_file_count
        return result.total_size >= self.budget.max_size

    def build(self) -> BuildResult:
        spec = self.spec
        budget = self.budget
        result = BuildResult(max_file_count=budget.max_file_count)
        folders_depth = spec.folders_depth

        log.info(
            "build_started",
            root=self.root,
            estimate_only=self.estimate_only,
            fill_to_max_size=self.fill_to_max_size,
            min_size=budget.min_size,
            max_size=budget.max_size,
            max_file_count=budget.max_file_count,
        )
        self._make_dir(self.root)
        self.reporter.start(result.max_file_count, "Building dataset")

        depth = 0
        try:
            while depth < folders_depth:
                depth += 1
                level_bytes, level_files = self._build_level(depth, result)
                result.levels = depth

                if (
                    self.fill_to_max_size
                    and depth == folders_depth
                    and not self._at_capacity(result)
                    and (level_bytes > 0 or spec.max_file_size == 0)
                    and level_files > 0
                ):
                    folders_depth += 1
                    result.max_file_count += (
                        spec.max_files_per_dir * spec.folders_width
                    )
                    self.reporter.set_total(result.max_file_count)
                    log.debug("build_level_added", depth=folders_depth)
        finally:
            self.reporter.finish()

        log.info(
            "build_finished",
            root=self.root,
            total_size=result.total_size,
            file_count=result.file_count,
            dir_count=result.dir_count,
            levels=result.levels,
        )
        return result

    def _build_level(self, depth: int, result: BuildResult):
        spec = self.spec
        depth_dir = os.path.join(self.root, f"d{self.tag_clock()}-{depth:04d}")
        self._make_dir(depth_dir)
        result.dir_count += 1
        level_bytes = 0
        level_files = 0
        level_stamp = None

        for width in range(1, spec.folders_width + 1):
            width_name = f"w{self.tag_clock()}-{width:04d}"
            width_dir = os.path.join(depth_dir, width_name)
            self._make_dir(width_dir)
            result.dir_count += 1

            count = self._files_in_dir()
            shortfall = spec.max_files_per_dir - count
            if shortfall:
                result.max_file_count -= shortfall
                self.reporter.set_total(result.max_file_count)

            for sequence in range(1, count + 1):
                size = self._file_size()
                self.reporter.advance()
                if self.spec.max_file_size == 0:
                    if result.file_count >= self.budget.max_file_count:
                        continue
                elif result.total_size + size > self.budget.max_size:
                    continue

                path = os.path.join(
                    width_dir, file_name(sequence, size, spec.max_file_size)
                )
                result.total_size += size
                result.file_count += 1
                level_bytes += size
                level_files += 1
                # drawn even when nothing is written so dry runs consume
                # the same random sequence as real builds
                stamp = self._timestamp_ns() if spec.has_date_range else None
                if self.estimate_only or os.path.exists(path):
                    continue

                self._write_file(path, size)
                if stamp is not None:
                    self._stamp(stamp, path, width_dir, depth_dir)
                    level_stamp = stamp
                log.debug("file_written", path=path, size=size)

        # later width directories reset the depth directory's mtime
        if level_stamp is not None:
            self._stamp(level_stamp, depth_dir)
        return level_bytes, level_files


def build_tree(
    spec: DatasetSpec,
    root: str,
    estimate_only: bool = False,
    fill_to_max_size: bool = False,
    **kwargs,
) -> BuildResult:
    return TreeBuilder(
        spec,
        root,
        estimate_only=estimate_only,
        fill_to_max_size=fill_to_max_size,
        **kwargs,
    ).build()

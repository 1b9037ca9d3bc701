"""Filesystem Scanner and scan snapshots.

A scan is a flat, ordered list of :class:`ScanEntry` (root first, top-down,
names sorted). Paths are also recorded relative to the scan root with the root
replaced by :data:`ROOT_TOKEN`, so two scans of the same structure at
different locations can be compared entry by entry.
"""
import os
from dataclasses import asdict, dataclass
from typing import Iterable, Iterator, List

import orjson
import pendulum
import structlog

from .config import DEFAULT_SETTINGS
from .errors import IOFailure, PathNotFound

log = structlog.get_logger(__name__)

ROOT_TOKEN = "{root}"
DIRECTORY = "directory"
FILE = "file"


@dataclass(frozen=True)
class ScanEntry:
    kind: str
    name: str
    size: int
    created: float
    accessed: float
    modified: float
    # parent directory for files, the directory itself for directories
    directory: str
    relative_directory: str

    @property
    def path(self) -> str:
        if self.kind == DIRECTORY:
            return self.directory
        return os.path.join(self.directory, self.name)

    @property
    def is_file(self) -> bool:
        return self.kind == FILE


@dataclass(frozen=True)
class ScanSummary:
    dir_count: int
    dir_size: int
    file_count: int
    file_size: int


def relative_to_root(path: str, root: str) -> str:
    if path == root or path.startswith(root + os.sep):
        return ROOT_TOKEN + path[len(root):]
    return path


def _entry(
    kind: str, name: str, path: str, directory: str, root: str
) -> ScanEntry:
    st = os.stat(path)
    return ScanEntry(
        kind=kind,
        name=name,
        size=st.st_size,
        # st_ctime is the inode change time where no birth time is recorded
        created=getattr(st, "st_birthtime", st.st_ctime),
        accessed=st.st_atime,
        modified=st.st_mtime,
        directory=directory,
        relative_directory=relative_to_root(directory, root),
    )


def iter_scan(root: str) -> Iterator[ScanEntry]:
    """Yield every directory and file under ``root``, ``root`` included."""
    root = os.path.abspath(root)
    if not os.path.isdir(root):
        raise PathNotFound(f"Path not found or not a directory: {root}")

    def _on_error(exc: OSError):
        raise IOFailure(
            f"Cannot list {exc.filename}: {exc.strerror}", exc.filename
        )

    yield _entry(DIRECTORY, os.path.basename(root), root, root, root)
    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        dirnames.sort()
        for name in dirnames:
            path = os.path.join(dirpath, name)
            yield _entry(DIRECTORY, name, path, path, root)
        for name in sorted(filenames):
            path = os.path.join(dirpath, name)
            yield _entry(FILE, name, path, dirpath, root)


def scan(root: str) -> List[ScanEntry]:
    entries = list(iter_scan(root))
    log.info("scan_finished", root=os.path.abspath(root), entries=len(entries))
    return entries


def summarize(entries: Iterable[ScanEntry]) -> ScanSummary:
    dir_count = dir_size = file_count = file_size = 0
    for entry in entries:
        if entry.is_file:
            file_count += 1
            file_size += entry.size
        else:
            dir_count += 1
            dir_size += entry.size
    return ScanSummary(dir_count, dir_size, file_count, file_size)


def _iso(ts: float, tz: str) -> str:
    return pendulum.from_timestamp(ts, tz=tz).isoformat()


def _epoch(text: str) -> float:
    return pendulum.parse(text).timestamp()


def save_snapshot(
    entries: Iterable[ScanEntry],
    out_path: str,
    root: str,
    tz: str = DEFAULT_SETTINGS.timezone,
) -> str:
    """Write a scan snapshot as a single orjson-encoded document."""
    items = []
    for entry in entries:
        item = asdict(entry)
        for key in ("created", "accessed", "modified"):
            item[key] = _iso(item[key], tz)
        items.append(item)
    payload = {
        "root": os.path.abspath(root),
        "generated_at": pendulum.now(tz).isoformat(),
        "entries": items,
    }
    os.makedirs(os.path.dirname(os.path.abspath(out_path)), exist_ok=True)
    with open(out_path, "wb") as f:
        f.write(orjson.dumps(payload, option=orjson.OPT_INDENT_2))
    log.info("snapshot_saved", path=out_path, entries=len(items))
    return out_path


def load_snapshot(path: str) -> List[ScanEntry]:
    if not os.path.isfile(path):
        raise PathNotFound(f"Snapshot not found: {path}")
    with open(path, "rb") as f:
        try:
            payload = orjson.loads(f.read())
        except orjson.JSONDecodeError as exc:
            raise IOFailure(f"Malformed snapshot {path}: {exc}", path) from exc
    items = payload.get("entries") if isinstance(payload, dict) else None
    if not isinstance(items, list):
        raise IOFailure(f"Snapshot {path} has no entry list", path)
    entries = []
    for item in items:
        try:
            for key in ("created", "accessed", "modified"):
                item[key] = _epoch(item[key])
            entries.append(ScanEntry(**item))
        except (KeyError, TypeError, ValueError) as exc:
            raise IOFailure(
                f"Malformed snapshot entry in {path}: {exc}", path
            ) from exc
    log.info("snapshot_loaded", path=path, entries=len(entries))
    return entries

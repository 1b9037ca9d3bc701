"""Dataset specification: loading, unit parsing and validation.

A specification describes the *shape* of a synthetic tree (how wide, how deep,
how many files per directory) and the file size range, either explicitly or
through a named gauge. Everything here runs before the filesystem is touched.
"""
import os
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

import orjson
import pendulum

from .errors import InvalidSpec, PathNotFound
from .formatting import UNITS

MAX_FILES_PER_DIR = 9999

SIZE_GAUGES = {
    "empty": (0, 0),
    "tiny": (1, 4096),
    "small": (4096, 262144),
    "medium": (262144, 4194304),
    "large": (4194304, 536870912),
    "huge": (536870912, 671088640),
}

_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([KMGTP]?B)?\s*$", re.IGNORECASE)
_MULTIPLIERS = {unit: 1024 ** i for i, unit in enumerate(UNITS)}

_SHAPE_FIELDS = ("foldersWidth", "foldersDepth", "maxFilesPerDir")
_SIZE_FIELDS = ("minFileSize", "maxFileSize")


def parse_size(value: Union[int, float, str]) -> int:
    """Return a byte count for ``10240``, ``"10 KB"`` or ``"1.5MB"``.

    Fractional byte counts are rejected.
    """
    if isinstance(value, bool):
        raise InvalidSpec(f"Invalid size: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise InvalidSpec(f"Size must be non-negative: {value}")
        size = value
    else:
        m = _SIZE_RE.match(str(value))
        if not m:
            raise InvalidSpec(f"Invalid size: {value!r}")
        unit = (m.group(2) or "B").upper()
        size = float(m.group(1)) * _MULTIPLIERS[unit]
    if isinstance(size, float):
        if not size.is_integer():
            raise InvalidSpec(
                f"Size is not a whole number of bytes: {value!r}"
            )
        size = int(size)
    return size


def parse_date(text: str) -> pendulum.DateTime:
    try:
        parsed = pendulum.parse(text)
    except (ValueError, TypeError) as exc:
        raise InvalidSpec(f"Invalid date: {text!r}") from exc
    if not isinstance(parsed, pendulum.DateTime):
        raise InvalidSpec(f"Invalid date: {text!r}")
    return parsed


def _as_count(data: Mapping[str, Any], key: str) -> int:
    value = data[key]
    try:
        count = int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidSpec(f"{key} must be an integer, got {value!r}") from exc
    if isinstance(value, float) and value != count:
        raise InvalidSpec(f"{key} must be an integer, got {value!r}")
    return count


@dataclass(frozen=True)
class DatasetSpec:
    folders_width: int
    folders_depth: int
    max_files_per_dir: int
    min_file_size: int
    max_file_size: int
    min_date: Optional[pendulum.DateTime] = None
    max_date: Optional[pendulum.DateTime] = None
    gauge: Optional[str] = None

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if self.folders_width < 1:
            raise InvalidSpec("foldersWidth must be at least 1")
        if self.folders_depth < 1:
            raise InvalidSpec("foldersDepth must be at least 1")
        if not 1 <= self.max_files_per_dir <= MAX_FILES_PER_DIR:
            raise InvalidSpec(
                f"maxFilesPerDir must be between 1 and {MAX_FILES_PER_DIR}, "
                f"got {self.max_files_per_dir}"
            )
        if self.min_file_size < 0 or self.max_file_size < 0:
            raise InvalidSpec("File sizes must be non-negative")
        if self.min_file_size > self.max_file_size:
            raise InvalidSpec(
                f"minFileSize ({self.min_file_size}) is greater than "
                f"maxFileSize ({self.max_file_size})"
            )
        if (self.min_date is None) != (self.max_date is None):
            raise InvalidSpec("minDate and maxDate must be given together")
        if self.min_date is not None and self.max_date <= self.min_date:
            raise InvalidSpec(
                f"maxDate ({self.max_date.to_date_string()}) must be after "
                f"minDate ({self.min_date.to_date_string()})"
            )

    @property
    def has_date_range(self) -> bool:
        return self.min_date is not None

    @classmethod
    def from_mapping(
        cls,
        data: Mapping[str, Any],
        gauge: Optional[str] = None,
        min_date: Optional[pendulum.DateTime] = None,
        max_date: Optional[pendulum.DateTime] = None,
    ) -> "DatasetSpec":
        """Build a spec from the camelCase record used by JSON spec files.

        With ``gauge`` only the shape fields are required and the size range
        comes from :data:`SIZE_GAUGES`; otherwise both size fields are needed.
        """
        if gauge is not None:
            if gauge not in SIZE_GAUGES:
                raise InvalidSpec(
                    f"Unknown gauge {gauge!r}; expected one of "
                    f"{', '.join(SIZE_GAUGES)}"
                )
            required = _SHAPE_FIELDS
        else:
            required = _SHAPE_FIELDS + _SIZE_FIELDS

        missing = [k for k in required if data.get(k) is None]
        if missing:
            kind = f"gauge '{gauge}'" if gauge else "explicit sizes"
            raise InvalidSpec(
                f"Specification with {kind} is missing: {', '.join(missing)}"
            )

        if gauge is not None:
            min_size, max_size = SIZE_GAUGES[gauge]
        else:
            min_size = parse_size(data["minFileSize"])
            max_size = parse_size(data["maxFileSize"])

        return cls(
            folders_width=_as_count(data, "foldersWidth"),
            folders_depth=_as_count(data, "foldersDepth"),
            max_files_per_dir=_as_count(data, "maxFilesPerDir"),
            min_file_size=min_size,
            max_file_size=max_size,
            min_date=min_date,
            max_date=max_date,
            gauge=gauge,
        )


def load_spec(
    path: str,
    gauge: Optional[str] = None,
    min_date: Optional[pendulum.DateTime] = None,
    max_date: Optional[pendulum.DateTime] = None,
) -> DatasetSpec:
    """Read a JSON specification file and validate it."""
    if not os.path.isfile(path):
        raise PathNotFound(f"Specification file not found: {path}")
    with open(path, "rb") as f:
        raw = f.read()
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise InvalidSpec(f"Malformed specification {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise InvalidSpec(f"Specification {path} must be a JSON object")
    return DatasetSpec.from_mapping(
        data, gauge=gauge, min_date=min_date, max_date=max_date
    )

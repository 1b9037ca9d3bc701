from dataclasses import dataclass

from .spec import DatasetSpec


@dataclass(frozen=True)
class SizeBudget:
    total_dirs: int
    min_size: int
    max_file_count: int
    max_size: int


def estimate(spec: DatasetSpec) -> SizeBudget:
    """Return the advisory size envelope for ``spec``.

    The minimum assumes one minimum-sized file per leaf directory; the maximum
    assumes every directory is full of maximum-sized files.
    """
    total_dirs = spec.folders_depth * spec.folders_width
    max_file_count = spec.max_files_per_dir * total_dirs
    return SizeBudget(
        total_dirs=total_dirs,
        min_size=spec.min_file_size * total_dirs,
        max_file_count=max_file_count,
        max_size=spec.max_file_size * max_file_count,
    )

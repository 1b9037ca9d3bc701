import logging
import os
import random
from dataclasses import replace
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from .builder import build_tree
from .config import Settings
from .errors import (
    InvalidPercentage,
    InvalidSpec,
    IOFailure,
    PathNotFound,
)
from .estimator import estimate
from .formatting import human_size
from .logger import close_logging, configure_logging
from .mutator import mutate_tree
from .reporter import RichReporter
from .scanner import save_snapshot, scan, summarize
from .spec import SIZE_GAUGES, DatasetSpec, load_spec, parse_date

console = Console()


class ExitCodes:
    SUCCESS = 0
    USAGE = 2
    NOT_FOUND = 3
    WRITE_ERROR = 4


def _run(ctx: click.Context, action) -> None:
    """Run ``action`` and translate failures into exit codes."""
    debug = ctx.obj["debug"]
    try:
        action()
    except (InvalidSpec, InvalidPercentage) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(ExitCodes.USAGE)
    except PathNotFound as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(ExitCodes.NOT_FOUND)
    except (IOFailure, OSError) as e:
        if debug:
            console.print_exception()
        else:
            console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(ExitCodes.WRITE_ERROR)
    finally:
        close_logging()
    raise SystemExit(ExitCodes.SUCCESS)


def _rng(seed: Optional[int]) -> random.Random:
    return random.Random(seed)


@click.group(name="dsforge")
@click.option(
    "--logs-dir",
    default=None,
    help="Directory for the JSONL event log",
)
@click.option("-v", "--verbose", count=True, help="Increase log verbosity")
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Show tracebacks",
)
@click.pass_context
def cli(
    ctx: click.Context, logs_dir: Optional[str], verbose: int, debug: bool
) -> None:
    """dsforge: build synthetic datasets, scan them and simulate churn."""
    settings = Settings.from_env()
    if logs_dir:
        settings = replace(settings, logs_dir=logs_dir)
    level = logging.DEBUG if verbose else settings.log_level
    configure_logging(
        settings.log_path,
        max_bytes=settings.log_max_bytes,
        backup_count=settings.log_backup_count,
        level=level,
        tz=settings.timezone,
    )
    ctx.obj = {"settings": settings, "debug": debug}


def _resolve_spec(
    spec_file: Optional[str],
    gauge: Optional[str],
    min_date: Optional[str],
    max_date: Optional[str],
    fields: dict,
) -> DatasetSpec:
    if (min_date is None) != (max_date is None):
        raise InvalidSpec("--min-date and --max-date must be given together")
    lo = parse_date(min_date) if min_date else None
    hi = parse_date(max_date) if max_date else None
    if spec_file:
        return load_spec(spec_file, gauge=gauge, min_date=lo, max_date=hi)
    return DatasetSpec.from_mapping(
        fields, gauge=gauge, min_date=lo, max_date=hi
    )


@cli.command()
@click.argument("root", type=click.Path(file_okay=False))
@click.option(
    "--spec",
    "spec_file",
    type=click.Path(dir_okay=False),
    help="JSON specification file",
)
@click.option(
    "--width",
    "folders_width",
    type=int,
    help="Directories per depth level",
)
@click.option(
    "--depth",
    "folders_depth",
    type=int,
    help="Number of depth levels",
)
@click.option(
    "--max-files",
    "max_files_per_dir",
    type=int,
    help="Maximum files per directory",
)
@click.option(
    "--min-size",
    "min_file_size",
    help="Minimum file size, e.g. 10KB",
)
@click.option(
    "--max-size",
    "max_file_size",
    help="Maximum file size, e.g. 10MB",
)
@click.option(
    "--gauge",
    type=click.Choice(list(SIZE_GAUGES)),
    help="Named file size range",
)
@click.option(
    "--estimate",
    "estimate_only",
    is_flag=True,
    default=False,
    help="Only report sizes, write nothing",
)
@click.option(
    "--fill",
    "fill_to_max_size",
    is_flag=True,
    default=False,
    help="Add depth levels until the maximum size is reached",
)
@click.option("--min-date", help="Earliest file timestamp (YYYY-MM-DD)")
@click.option("--max-date", help="Latest file timestamp (YYYY-MM-DD)")
@click.option(
    "--seed",
    type=int,
    default=None,
    help="Seed for sizes, counts and dates",
)
@click.pass_context
def build(
    ctx: click.Context,
    root: str,
    spec_file: Optional[str],
    folders_width: Optional[int],
    folders_depth: Optional[int],
    max_files_per_dir: Optional[int],
    min_file_size: Optional[str],
    max_file_size: Optional[str],
    gauge: Optional[str],
    estimate_only: bool,
    fill_to_max_size: bool,
    min_date: Optional[str],
    max_date: Optional[str],
    seed: Optional[int],
) -> None:
    """Build a synthetic dataset under ROOT."""
    fields = {
        "foldersWidth": folders_width,
        "foldersDepth": folders_depth,
        "maxFilesPerDir": max_files_per_dir,
        "minFileSize": min_file_size,
        "maxFileSize": max_file_size,
    }
    settings = ctx.obj["settings"]

    def action():
        spec = _resolve_spec(spec_file, gauge, min_date, max_date, fields)
        if estimate_only:
            budget = estimate(spec)
            simulated = build_tree(
                spec,
                root,
                estimate_only=True,
                fill_to_max_size=fill_to_max_size,
                rng=_rng(seed),
            )
            console.print(
                f"Minimum:  {human_size(budget.min_size)} "
                f"({budget.total_dirs} files)"
            )
            console.print(
                f"Expected: {human_size(simulated.total_size)} "
                f"({simulated.file_count} files)"
            )
            console.print(
                f"Maximum:  {human_size(budget.max_size)} "
                f"({budget.max_file_count} files)"
            )
            return

        result = build_tree(
            spec,
            root,
            fill_to_max_size=fill_to_max_size,
            rng=_rng(seed),
            reporter=RichReporter(console),
            chunk_size=settings.chunk_size,
        )
        console.print("[green]Created:[/green]")
        console.print(f"  [cyan]root[/cyan]: {os.path.abspath(root)}")
        console.print(f"  [cyan]directories[/cyan]: {result.dir_count}")
        console.print(f"  [cyan]files[/cyan]: {result.file_count}")
        console.print(f"  [cyan]size[/cyan]: {human_size(result.total_size)}")

    _run(ctx, action)


@cli.command(name="scan")
@click.argument("root", type=click.Path())
@click.option(
    "--out",
    "out_path",
    default=None,
    help="Snapshot file (defaults to <root name>_scan.json)",
)
@click.option(
    "--pretty",
    is_flag=True,
    default=False,
    help="Print directory and file totals",
)
@click.pass_context
def scan_cmd(
    ctx: click.Context, root: str, out_path: Optional[str], pretty: bool
) -> None:
    """Scan ROOT into a JSON snapshot."""
    settings = ctx.obj["settings"]

    def action():
        entries = scan(root)
        target = out_path
        if not target:
            abs_root = os.path.abspath(root).rstrip(os.sep)
            safe_base = os.path.basename(abs_root) or "root"
            target = f"{safe_base}_scan.json"
        save_snapshot(entries, target, root, tz=settings.timezone)
        console.print(
            f"[green]Snapshot:[/green] {target} ({len(entries)} entries)"
        )
        if pretty:
            summary = summarize(entries)
            table = Table(title=os.path.abspath(root))
            table.add_column("Type")
            table.add_column("Count", justify="right")
            table.add_column("Size", justify="right")
            table.add_row(
                "Directories",
                str(summary.dir_count),
                human_size(summary.dir_size),
            )
            table.add_row(
                "Files",
                str(summary.file_count),
                human_size(summary.file_size),
            )
            console.print(table)

    _run(ctx, action)


@cli.command()
@click.argument("root", type=click.Path())
@click.option(
    "--perc-files",
    type=int,
    required=True,
    help="Percentage of files to mutate (1-100)",
)
@click.option(
    "--perc-data",
    type=int,
    default=0,
    show_default=True,
    help="Percentage of each file to rewrite (0-150)",
)
@click.option(
    "--backdate",
    default=None,
    help="Set timestamps of picked files to this date instead",
)
@click.option(
    "--snapshot",
    "snapshot_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Pick files from a saved scan instead of scanning ROOT",
)
@click.option(
    "--seed",
    type=int,
    default=None,
    help="Seed for file selection",
)
@click.pass_context
def mutate(
    ctx: click.Context,
    root: str,
    perc_files: int,
    perc_data: int,
    backdate: Optional[str],
    snapshot_path: Optional[str],
    seed: Optional[int],
) -> None:
    """Rewrite or backdate a random share of the files under ROOT."""
    settings = ctx.obj["settings"]

    def action():
        target = parse_date(backdate) if backdate else None
        result = mutate_tree(
            root,
            perc_files,
            perc_data,
            snapshot=snapshot_path,
            backdate=target,
            rng=_rng(seed),
            reporter=RichReporter(console),
            chunk_size=settings.chunk_size,
        )
        written = human_size(result.bytes_written)
        console.print("[green]Mutated:[/green]")
        console.print(f"  [cyan]selected[/cyan]: {result.selected}")
        console.print(
            f"  [cyan]rewritten[/cyan]: {result.rewritten} ({written})"
        )
        console.print(f"  [cyan]backdated[/cyan]: {result.backdated}")
        if result.failures:
            failed = len(result.failures)
            console.print(f"[yellow]{failed} file(s) failed[/yellow]")
            raise IOFailure(f"{failed} file(s) could not be mutated")

    _run(ctx, action)


def main(argv=None):
    cli(args=argv)


if __name__ == "__main__":
    main()

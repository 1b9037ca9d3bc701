from typing import Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)


class Reporter:
    """Progress and message sink used by the builder and the mutator.

    The base class ignores everything, which is what library callers and
    tests want.
    """

    def start(self, total: int, description: str = "") -> None:
        pass

    def set_total(self, total: int) -> None:
        pass

    def advance(self, n: int = 1) -> None:
        pass

    def finish(self) -> None:
        pass

    def message(self, text: str, style: str = "") -> None:
        pass


class RichReporter(Reporter):
    def __init__(
        self, console: Optional[Console] = None, transient: bool = False
    ):
        self.console = console or Console()
        self._transient = transient
        self._progress: Optional[Progress] = None
        self._task = None

    def start(self, total: int, description: str = "") -> None:
        self.finish()
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self.console,
            transient=self._transient,
        )
        self._progress.start()
        self._task = self._progress.add_task(
            description or "Working...", total=total
        )

    def set_total(self, total: int) -> None:
        if self._progress is not None:
            self._progress.update(self._task, total=total)

    def advance(self, n: int = 1) -> None:
        if self._progress is not None:
            self._progress.advance(self._task, n)

    def finish(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None
            self._task = None

    def message(self, text: str, style: str = "") -> None:
        if style:
            self.console.print(f"[{style}]{text}[/{style}]")
        else:
            self.console.print(text)

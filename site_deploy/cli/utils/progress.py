"""Progress display utilities"""

from contextlib import contextmanager
from typing import Dict, Generator, Optional

from rich.console import Console
from rich.progress import (
    Progress,
    SpinnerColumn,
    TextColumn,
    BarColumn,
    MofNCompleteColumn,
    TimeRemainingColumn,
    TaskID,
)

_PHASE_LABELS = {
    "upload": "Uploading",
    "merge": "Merging preserved",
}


class UploadProgress:
    """One progress bar per reconciliation phase, fed by the upload callback

    The live display only starts with the first upload so that the preview
    and the confirmation prompt print normally.
    """

    def __init__(self, console: Optional[Console] = None):
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeRemainingColumn(),
            console=console or Console(),
        )
        self._tasks: Dict[str, TaskID] = {}
        self._started = False

    def __call__(self, phase: str, path: str, done: int, total: int) -> None:
        if not self._started:
            self.progress.start()
            self._started = True

        task = self._tasks.get(phase)
        if task is None:
            label = _PHASE_LABELS.get(phase, phase.capitalize())
            task = self.progress.add_task(label, total=total)
            self._tasks[phase] = task
        self.progress.update(task, completed=done, total=total)

    def stop(self) -> None:
        if self._started:
            self.progress.stop()
            self._started = False


@contextmanager
def upload_progress(console: Optional[Console] = None,
                    enabled: bool = True) -> Generator[Optional[UploadProgress], None, None]:
    """Progress for the upload phases; yields None when disabled"""
    if not enabled:
        yield None
        return

    tracker = UploadProgress(console)
    try:
        yield tracker
    finally:
        tracker.stop()

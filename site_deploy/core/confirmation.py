"""Deploy preview and consent policy"""

import logging
import os
import sys
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from ..api.exceptions import ConsentError, UserCancelledError
from ..constants import ConfirmMode, ENV_ASSUME_YES
from ..utils.formatting import format_size


def consent_from_env(environ=None) -> bool:
    """True when the auto-confirm environment toggle is set"""
    value = (environ if environ is not None else os.environ).get(ENV_ASSUME_YES, "")
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class DeployPreview:
    """What a run is about to do, shown before any connection is opened"""

    action: str
    transport: str
    target: str
    webroot: str
    artifact: str
    artifact_size: Optional[int]
    local_files: int
    preserve: Sequence[str]
    dry_run: bool = False
    extra: List[Tuple[str, str]] = field(default_factory=list)

    def rows(self) -> List[Tuple[str, str]]:
        size = f" ({format_size(self.artifact_size)})" if self.artifact_size is not None else ""
        rows = [
            ("Server", self.target),
            ("Mode", self.transport),
            ("Webroot", self.webroot),
            ("Artifact", f"{self.artifact}{size}"),
            ("Local files", str(self.local_files)),
            ("Preserve", ", ".join(self.preserve) if self.preserve else "(none)"),
            ("Delete mode", "authoritative outside preserved paths"),
        ]
        rows.extend(self.extra)
        if self.dry_run:
            rows.append(("DRY RUN", "no changes will be made"))
        return rows


class ConfirmationGate:
    """Prints the preview and enforces the consent policy

    never: proceed. always: prompt on a terminal, otherwise require consent.
    auto: consent proceeds, otherwise prompt on a terminal. A session with
    no terminal and no consent fails instead of hanging.
    """

    def __init__(self,
                 mode: ConfirmMode = ConfirmMode.AUTO,
                 assume_yes: bool = False,
                 interactive: Optional[bool] = None,
                 console: Optional[Console] = None):
        self.mode = mode
        self.assume_yes = assume_yes
        if interactive is None:
            interactive = sys.stdin.isatty() and sys.stdout.isatty()
        self.interactive = interactive
        self.console = console or Console()
        self.logger = logging.getLogger(self.__class__.__name__)

    def render(self, preview: DeployPreview) -> None:
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column(style="bold")
        table.add_column()
        for label, value in preview.rows():
            table.add_row(label, escape(str(value)))

        style = "yellow" if preview.dry_run else "cyan"
        self.console.print(Panel(table, title=f"{preview.action.capitalize()} preview", border_style=style))

    def needs_prompt(self) -> bool:
        """Decide between proceeding and prompting

        Raises:
            ConsentError: If consent is required but cannot be obtained
        """
        if self.mode == ConfirmMode.NEVER:
            return False
        if self.mode == ConfirmMode.ALWAYS:
            if self.interactive:
                return True
            if self.assume_yes:
                return False
            raise ConsentError()
        if self.assume_yes:
            return False
        if self.interactive:
            return True
        raise ConsentError()

    def confirm(self, preview: DeployPreview) -> None:
        """Show the preview and obtain consent

        Dry runs make no changes, so they never ask.

        Raises:
            ConsentError: Non-interactive session without consent
            UserCancelledError: The operator declined
        """
        self.render(preview)
        if preview.dry_run:
            return

        if not self.needs_prompt():
            self.logger.debug("Proceeding without prompt (confirm=%s)", self.mode.value)
            return

        if not Confirm.ask("[cyan]Proceed?[/cyan]", default=False, console=self.console):
            raise UserCancelledError()

"""Pre- and post-deploy hooks"""

import logging
import shlex
from typing import Optional, Tuple

from rich.console import Console
from rich.markup import escape

from .healthcheck import run_local_command
from ..api.exceptions import ConfigError, HookError, TransportError
from ..constants import HOOK_PRE, HOOK_LOCAL, HOOK_REMOTE, EMOJI_WARNING
from ..models.config import HookConfig
from ..models.result import Result
from ..remote.shell import RemoteShell

q = shlex.quote


class HookRunner:
    """Runs the configured hook commands for one phase

    Local commands run through `bash -lc` on this machine, remote ones
    through `bash -lc` over the SSH shell. Pre hooks run local first, post
    hooks remote first. A failing command raises HookError when the hooks
    are strict and becomes a warning on the result otherwise.
    """

    def __init__(self, config: HookConfig, shell: Optional[RemoteShell] = None,
                 console: Optional[Console] = None):
        self.config = config
        self.shell = shell
        self.console = console or Console()
        self.logger = logging.getLogger(self.__class__.__name__)

    async def run(self, when: str, result: Result, dry_run: bool = False) -> int:
        """
        Run every command of one phase in order

        Args:
            when: "pre" or "post"
            result: Receives a warning per failed non-strict command
            dry_run: Print the commands without running them

        Returns:
            Number of commands that ran successfully

        Raises:
            HookError: First failing command when the hooks are strict
        """
        order = (HOOK_LOCAL, HOOK_REMOTE) if when == HOOK_PRE else (HOOK_REMOTE, HOOK_LOCAL)
        succeeded = 0
        for where in order:
            for command in self.config.commands(when, where):
                label = f"{where} {when}-deploy hook"
                if dry_run:
                    self.console.print(f"[yellow]Would run[/yellow] {label}: {escape(command)}")
                    continue

                self.console.print(f"[cyan]Running[/cyan] {label}: {escape(command)}")
                if where == HOOK_LOCAL:
                    ok, detail = await self._run_local(command)
                else:
                    ok, detail = await self._run_remote(command)

                if ok:
                    succeeded += 1
                    continue
                if self.config.strict:
                    raise HookError(f"{label} failed: {command}: {detail}")
                self.logger.warning("%s failed: %s: %s", label, command, detail)
                warning = result.add_warning(f"{when}-hook", command, detail)
                self.console.print(f"{EMOJI_WARNING} {escape(str(warning))}")
        return succeeded

    async def _run_local(self, command: str) -> Tuple[bool, str]:
        returncode, tail = await run_local_command(f"bash -lc {q(command)}", self.config.timeout)
        if returncode is None:
            return False, f"timed out after {self.config.timeout:g}s"
        return returncode == 0, f"exited {returncode}" + (f": {tail}" if tail and returncode else "")

    async def _run_remote(self, command: str) -> Tuple[bool, str]:
        if self.shell is None:
            raise ConfigError("Remote hooks need the shell transport")
        try:
            outcome = await self.shell.run(f"bash -lc {q(command)}", check=False)
        except TransportError as e:
            return False, str(e)
        detail = (outcome.stderr or outcome.stdout).strip()[-500:]
        return outcome.ok, f"exited {outcome.exit_status}" + (f": {detail}" if detail and not outcome.ok else "")

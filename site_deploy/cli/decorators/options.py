# site_deploy/cli/decorators/options.py
"""Shared target options and error handling for upload/restore commands"""

import functools
import sys
from typing import Any, Callable, Dict

import click
from rich.markup import escape

from ...api.exceptions import SiteDeployError, UserCancelledError
from ...constants import (
    ConfirmMode,
    FTPSecureMode,
    EXIT_ERROR,
    EXIT_CANCELLED,
)
from ..utils.output import console

# click parameter name -> target setting
OVERRIDE_KEYS = {
    'host': 'host',
    'user': 'user',
    'domain': 'domain',
    'webroot': 'webroot',
    'preserve': 'preserve',
    'timeout': 'timeout_ms',
    'concurrency': 'concurrency',
    'confirm': 'confirm',
    'port': 'port',
    'password': 'password',
    'secure': 'secure',
    'ssh_key': 'ssh_key',
    'backup_dir': 'backup_dir',
    'backup_prefix': 'backup_prefix',
    'backup_retain': 'backup_retain',
    'remote_tmp': 'remote_tmp',
    'healthcheck_url': 'healthcheck_url',
    'healthcheck_cmd': 'healthcheck_cmd',
    'rollback': 'rollback_on_fail',
    'chown': 'chown',
    'no_hooks': 'no_hooks',
}

_TARGET_OPTIONS = [
    click.option('--config', 'config_path', type=click.Path(dir_okay=False),
                 help='Config file (default: .site-deploy.yaml in this or a parent dir)'),
    click.option('--host', help='Server host name'),
    click.option('--user', help='Login user'),
    click.option('--domain', help='Site domain (derives the default webroot)'),
    click.option('--webroot', help='Remote document root'),
    click.option('--preserve', help='Comma separated preserved paths (dir/ = prefix, else exact)'),
    click.option('--dry-run', is_flag=True, help='Print the plan without changing anything'),
    click.option('--yes', '--force', 'assume_yes', is_flag=True, help='Proceed without the confirmation prompt'),
    click.option('--output', type=click.Choice(['panel', 'json']), default='panel',
                 help='Result format'),
    click.option('--timeout', type=int, help='Connection/command timeout in milliseconds'),
    click.option('--concurrency', type=int, help='Parallel uploads (1-16, default 4)'),
    click.option('--confirm', type=click.Choice([m.value for m in ConfirmMode]),
                 help='Confirmation policy'),
    click.option('--port', type=int, help='Server port'),
    click.option('--password', '--pass', 'password', help='Password (FTP/SFTP)'),
    click.option('--secure', type=click.Choice([m.value for m in FTPSecureMode]),
                 help='FTP TLS mode'),
    click.option('--ssh-key', help='Private key file (shell/SFTP)'),
    click.option('--backup-dir', help='Remote backup directory (shell)'),
    click.option('--backup-prefix', help='Backup file name prefix (shell)'),
    click.option('--backup-retain', type=int, help='Backups to keep (shell)'),
    click.option('--remote-tmp', help='Remote temp directory (shell)'),
    click.option('--healthcheck-url', help='URL that must answer below 400 after deploy'),
    click.option('--healthcheck-cmd', help='Local command that must exit 0 after deploy'),
    click.option('--rollback/--no-rollback', default=None,
                 help='Restore the previous webroot when the health check fails (shell)'),
    click.option('--chown', help='Owner for a best-effort chown -R of the webroot ("true" = login user, shell)'),
    click.option('--no-hooks', is_flag=True, help='Skip the configured pre/post deploy hooks'),
]


def target_options(func: Callable) -> Callable:
    """Attach every target option shared by upload and restore"""
    for option in reversed(_TARGET_OPTIONS):
        func = option(func)
    return func


def collect_overrides(params: Dict[str, Any]) -> Dict[str, Any]:
    """Map given CLI values to target settings; unset options are dropped"""
    return {
        key: params[name]
        for name, key in OVERRIDE_KEYS.items()
        if params.get(name) is not None
    }


def handle_errors(func: Callable) -> Callable:
    """Turn site-deploy exceptions into a red message and an exit code"""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        ctx = click.get_current_context()
        try:
            return func(*args, **kwargs)
        except UserCancelledError as e:
            console.print(f"[yellow]{escape(str(e))}[/yellow]")
            sys.exit(EXIT_CANCELLED)
        except SiteDeployError as e:
            code = escape(f" [{e.error_code}]") if e.error_code else ""
            console.print(f"[red]Error{code}:[/red] {escape(str(e))}")
            if ctx.obj is not None and getattr(ctx.obj, 'debug', False):
                console.print_exception()
            sys.exit(EXIT_ERROR)

    return wrapper

"""Restore command implementation"""

from typing import Optional

import click

from ..decorators import target_options, collect_overrides, handle_errors
from ..utils.output import console, format_restore_result, format_json
from ..utils.progress import upload_progress
from ...api import Deployer
from ...constants import TransportType

EXAMPLES = """
    Examples:

        # Restore the newest remote backup
        site-deploy restore:shell --yes

        # Restore a specific backup by name
        site-deploy restore:shell --backup-name example.com-public_html-20250101-120000.tar.gz

        # Restore from a local archive over SFTP
        site-deploy restore sftp --backup ./public_html.tar.gz --dry-run
"""


def run_restore(ctx: click.Context, transport: Optional[str], backup: Optional[str],
                backup_name: Optional[str], **params) -> None:
    dry_run = params.pop('dry_run')
    assume_yes = params.pop('assume_yes')
    config_path = params.pop('config_path')
    as_json = params.pop('output') == 'json'

    deployer = Deployer(transport, config_path=config_path,
                        overrides=collect_overrides(params), console=console)

    with upload_progress(console, enabled=not (dry_run or as_json)) as progress:
        result = deployer.restore(backup, backup_name=backup_name, dry_run=dry_run,
                                  assume_yes=assume_yes, progress=progress)

    if as_json:
        format_json(result)
    else:
        format_restore_result(result)


def make_restore_command(name: str, transport: Optional[TransportType] = None) -> click.Command:
    """Build `restore` (transport as argument) or a fixed `restore:<transport>` alias"""

    help_text = (
        "Reconcile the remote webroot with a backup archive\n\n"
        "Uses --backup (local file) or the newest / --backup-name archive\n"
        "in the remote backup directory. Preserved paths are kept.\n"
    )
    backup_option = click.option('--backup', type=click.Path(dir_okay=False),
                                 help='Local backup archive (.zip, .tar.gz, .tgz)')
    name_option = click.option('--backup-name', help='Exact remote backup file name')

    if transport is None:
        @click.command(name=name, help=help_text + EXAMPLES)
        @click.argument('transport_name', required=False,
                        type=click.Choice([t.value for t in TransportType]))
        @backup_option
        @name_option
        @target_options
        @click.pass_context
        @handle_errors
        def command(ctx, transport_name, backup, backup_name, **params):
            run_restore(ctx, transport_name, backup, backup_name, **params)
    else:
        @click.command(name=name, help=help_text + f"\nTransport: {transport.value}\n" + EXAMPLES)
        @backup_option
        @name_option
        @target_options
        @click.pass_context
        @handle_errors
        def command(ctx, backup, backup_name, **params):
            run_restore(ctx, transport.value, backup, backup_name, **params)

    return command


restore = make_restore_command("restore")
restore_shell = make_restore_command("restore:shell", TransportType.SHELL)
restore_sftp = make_restore_command("restore:sftp", TransportType.SFTP)
restore_ftp = make_restore_command("restore:ftp", TransportType.FTP)

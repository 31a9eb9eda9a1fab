"""Upload command implementation"""

import sys
from typing import Optional

import click

from ..decorators import target_options, collect_overrides, handle_errors
from ..utils.output import console, format_deploy_result, format_json
from ..utils.progress import upload_progress
from ...api import Deployer
from ...constants import TransportType, EXIT_HEALTHCHECK_FAILED, EMOJI_ROCKET

EXAMPLES = """
    Examples:

        # Preview what would change
        site-deploy upload:sftp --zip dist/site.zip --dry-run

        # Deploy over SSH with backup, snapshot and health check
        site-deploy upload:shell --host web1 --user deploy --domain example.com \\
            --healthcheck-url https://example.com/ --yes

        # FTP with explicit TLS and two extra preserved paths
        site-deploy upload ftp --preserve "uploads/,storage/,config.php" --secure explicit
"""


def run_upload(ctx: click.Context, transport: Optional[str], zip_path: Optional[str], **params) -> None:
    dry_run = params.pop('dry_run')
    assume_yes = params.pop('assume_yes')
    config_path = params.pop('config_path')
    as_json = params.pop('output') == 'json'

    deployer = Deployer(transport, config_path=config_path,
                        overrides=collect_overrides(params), console=console)
    if not as_json:
        console.print(f"{EMOJI_ROCKET} [cyan]site-deploy upload ({deployer.transport.value})[/cyan]")

    with upload_progress(console, enabled=not (dry_run or as_json)) as progress:
        result = deployer.deploy(zip_path, dry_run=dry_run, assume_yes=assume_yes, progress=progress)

    if as_json:
        format_json(result)
    else:
        format_deploy_result(result)
    if result.health_failed:
        sys.exit(EXIT_HEALTHCHECK_FAILED)


def make_upload_command(name: str, transport: Optional[TransportType] = None) -> click.Command:
    """Build `upload` (transport as argument) or a fixed `upload:<transport>` alias"""

    help_text = (
        "Reconcile the remote webroot with a release zip\n\n"
        "Files outside preserved paths are made identical to the release;\n"
        "preserved paths only receive files they do not have yet.\n"
    )

    if transport is None:
        @click.command(name=name, help=help_text + EXAMPLES)
        @click.argument('transport_name', required=False,
                        type=click.Choice([t.value for t in TransportType]))
        @click.option('--zip', 'zip_path', type=click.Path(dir_okay=False), help='Release zip')
        @target_options
        @click.pass_context
        @handle_errors
        def command(ctx, transport_name, zip_path, **params):
            run_upload(ctx, transport_name, zip_path, **params)
    else:
        @click.command(name=name, help=help_text + f"\nTransport: {transport.value}\n" + EXAMPLES)
        @click.option('--zip', 'zip_path', type=click.Path(dir_okay=False), help='Release zip')
        @target_options
        @click.pass_context
        @handle_errors
        def command(ctx, zip_path, **params):
            run_upload(ctx, transport.value, zip_path, **params)

    return command


upload = make_upload_command("upload")
upload_shell = make_upload_command("upload:shell", TransportType.SHELL)
upload_sftp = make_upload_command("upload:sftp", TransportType.SFTP)
upload_ftp = make_upload_command("upload:ftp", TransportType.FTP)

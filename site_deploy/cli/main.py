# site_deploy/cli/main.py
"""Main CLI entry point for site-deploy"""

import sys
import logging

import click
from rich.logging import RichHandler

from ..__version__ import __version__
from ..constants import APP_NAME, LOG_FORMAT, EXIT_ERROR, EXIT_CANCELLED
from .utils.output import console

# Import all commands
from .commands import upload, restore


def setup_logging(verbose: bool = False, debug: bool = False) -> None:
    """Setup logging configuration

    Args:
        verbose: Enable verbose output (INFO level)
        debug: Enable debug output (DEBUG level)
    """
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    # Configure rich handler
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            RichHandler(
                console=console,
                show_time=debug,
                show_path=debug,
                rich_tracebacks=True,
                tracebacks_suppress=[click]
            )
        ],
        force=True,
    )

    # Adjust third-party loggers
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("asyncssh").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


class Context:
    """CLI context object"""

    def __init__(self):
        self.verbose: bool = False
        self.debug: bool = False


@click.group(name=APP_NAME)
@click.version_option(__version__, prog_name=APP_NAME)
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('-d', '--debug', is_flag=True, help='Enable debug output')
@click.option('-q', '--quiet', is_flag=True, help='Suppress all output except errors')
@click.pass_context
def cli(ctx, verbose, debug, quiet):
    """Site Deploy - reconcile a web server's document root with a release

    Upload a release zip over SSH shell, SFTP or FTP(S). Files that are not
    in the release are removed, preserved paths such as uploads/ are never
    touched. Over SSH the previous webroot is backed up and kept as a
    snapshot that is swapped back if the health check fails.
    """
    # Setup logging
    if quiet:
        logging.disable(logging.CRITICAL)
    else:
        setup_logging(verbose=verbose, debug=debug)

    ctx.obj = Context()
    ctx.obj.verbose = verbose
    ctx.obj.debug = debug


# Register commands
cli.add_command(upload.upload)
cli.add_command(upload.upload_shell)
cli.add_command(upload.upload_sftp)
cli.add_command(upload.upload_ftp)
cli.add_command(restore.restore)
cli.add_command(restore.restore_shell)
cli.add_command(restore.restore_sftp)
cli.add_command(restore.restore_ftp)


def main():
    """Main entry point for the CLI application

    This function handles:
    - Keyboard interrupts
    - Unexpected exceptions with proper error display
    """
    try:
        cli(prog_name=APP_NAME)

    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(EXIT_CANCELLED)

    except Exception as e:
        console.print(f"[red]Unexpected error: {e}[/red]")
        if '--debug' in sys.argv or '-d' in sys.argv:
            console.print_exception()
        sys.exit(EXIT_ERROR)


if __name__ == "__main__":
    main()

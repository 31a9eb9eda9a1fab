"""Output formatting utilities"""

from typing import List

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from ...models import DeployResult, RestoreResult, OperationStatus
from ...utils.formatting import format_duration, pluralize

console = Console()


def _reconcile_lines(result: DeployResult) -> List[str]:
    reconcile = result.reconcile
    if reconcile is None:
        return []
    if result.dry_run:
        plan = reconcile.plan
        return [
            f"[bold]Plan:[/bold] {plan.summary()}",
        ]
    return [
        f"[bold]Deleted:[/bold] {reconcile.deleted}",
        f"[bold]Uploaded:[/bold] {reconcile.uploaded}",
        f"[bold]Merged (preserved):[/bold] {reconcile.merged}",
        f"[bold]Pruned dirs:[/bold] {reconcile.pruned}",
    ]


def _common_lines(result: DeployResult) -> List[str]:
    lines = [
        f"[bold]Server:[/bold] {escape(result.target or '')} ({result.transport})",
        f"[bold]Webroot:[/bold] {escape(result.webroot or '')}",
    ]
    lines.extend(_reconcile_lines(result))

    if result.backup_path:
        lines.append(f"[bold]Backup:[/bold] {escape(result.backup_path)}")
    if result.pre_snapshot:
        lines.append(f"[bold]Pre-deploy snapshot:[/bold] {escape(result.pre_snapshot)}")
    if result.failed_snapshot:
        lines.append(f"[bold]Failed tree:[/bold] {escape(result.failed_snapshot)}")
    if result.health is not None and result.health.configured:
        status = "[green]Passed[/green]" if result.health.passed else "[red]Failed[/red]"
        lines.append(f"[bold]Health check:[/bold] {status} ({escape(result.health.detail)})")
    if result.rollback_state:
        lines.append(f"[bold]State:[/bold] {result.rollback_state}")

    if result.warnings:
        lines.append("")
        lines.append(f"[yellow]{pluralize(len(result.warnings), 'warning')}:[/yellow]")
        for warning in result.warnings:
            lines.append(f"  [yellow]•[/yellow] {escape(str(warning))}")

    if result.duration is not None:
        lines.append("")
        lines.append(f"[dim]Duration: {format_duration(result.duration)}[/dim]")
    return lines


def format_deploy_result(result: DeployResult) -> None:
    """Format and display deploy operation result"""
    if result.status == OperationStatus.DRY_RUN:
        headline, title, style = "[yellow]Dry run complete, nothing was changed[/yellow]", "Deploy Plan", "yellow"
    elif result.status == OperationStatus.SUCCESS:
        headline, title, style = "[green]✓[/green] Deployment completed successfully!", "Deploy Result", "green"
    elif result.status == OperationStatus.ROLLED_BACK:
        headline, title, style = "[red]✗ Health check failed, previous webroot restored[/red]", "Deploy Rolled Back", "red"
    else:
        headline, title, style = f"[red]✗ {escape(result.message or 'Deployment failed')}[/red]", "Deploy Failed", "red"

    console.print(Panel("\n".join([headline, ""] + _common_lines(result)), title=title, border_style=style))


def format_restore_result(result: RestoreResult) -> None:
    """Format and display restore operation result"""
    if result.status == OperationStatus.DRY_RUN:
        headline, style = "[yellow]Dry run complete, nothing was changed[/yellow]", "yellow"
    else:
        headline, style = "[green]✓[/green] Restore completed successfully!", "green"

    lines = [headline, "", f"[bold]Source:[/bold] {escape(result.source or '')}"] + _common_lines(result)
    console.print(Panel("\n".join(lines), title="Restore Result", border_style=style))


def format_json(result: DeployResult) -> None:
    """Print the result as JSON for scripts"""
    console.print_json(data=result.to_dict())

"""
tfsweeper command line.
"""
import logging
from typing import NoReturn, Optional

import typer
from libterraform.exceptions import LibTerraformError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from tfsweeper.exceptions import ProviderLoadError, StateFileError
from tfsweeper.provider import PluginMeta, load_aws_provider
from tfsweeper.settings import get_settings
from tfsweeper.state import lookup_all_resource_instance_addrs, read_state_file
from tfsweeper.sweeper import SweepReport, sweep

logger = logging.getLogger(__name__)

app = typer.Typer(
    name='tfsweeper',
    help='Check that the resources recorded in a Terraform state still exist.',
    add_completion=False,
)
console = Console()
err_console = Console(stderr=True)


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(levelname)s %(name)s: %(message)s',
    )


def _fatal(msg: str, err) -> NoReturn:
    logger.error('%s: %s', msg, err)
    err_console.print(f'[bold red]✗ {escape(msg)}:[/bold red] {escape(str(err))}')
    raise typer.Exit(code=1)


def _read_state(path: str):
    try:
        return read_state_file(path)
    except StateFileError as e:
        _fatal('failed to read tfstate from local file', e)


def _print_report(report: SweepReport):
    table = Table(title='Sweep results')
    table.add_column('Address', style='cyan')
    table.add_column('ID')
    table.add_column('Result')
    for r in report.results:
        result = '[green]found[/green]' if r.ok else f'[red]failed[/red] {escape(r.error or "")}'
        table.add_row(escape(str(r.address)), escape(r.id), result)
    console.print(table)
    console.print(
        f'{len(report.succeeded)} found, {len(report.failed)} failed, {report.skipped} skipped'
    )


@app.command('sweep')
def sweep_command(
        state: Optional[str] = typer.Option(None, '--state', '-s', help='State file to sweep.'),
        profile: Optional[str] = typer.Option(None, '--profile', help='AWS shared credentials profile.'),
        region: Optional[str] = typer.Option(None, '--region', help='AWS region.'),
        plugin_dir: Optional[str] = typer.Option(None, '--plugin-dir', help='Local provider mirror directory.'),
        work_dir: Optional[str] = typer.Option(None, '--work-dir', help='Terraform working directory to use.'),
        log_level: Optional[str] = typer.Option(None, '--log-level', help='Logging level.'),
        strict: bool = typer.Option(False, '--strict', help='Exit with status 1 if any import failed.'),
):
    """Import every managed resource of the state file to check that it still exists."""
    settings = get_settings()
    configure_logging(log_level or settings.log_level)

    meta = PluginMeta(
        version=settings.provider_version,
        source=settings.provider_source,
        plugin_dir=plugin_dir or settings.plugin_dir,
    )
    try:
        provider = load_aws_provider(meta, work_dir=work_dir or settings.work_dir)
    except (ProviderLoadError, LibTerraformError) as e:
        _fatal('failed to load Terraform AWS resource provider', e)

    with provider:
        try:
            diags = provider.configure(profile or settings.profile, region or settings.region)
        except LibTerraformError as e:
            _fatal('failed to configure Terraform provider', e)
        if diags.has_errors():
            _fatal('failed to configure Terraform provider', diags.err())

        state_file = _read_state(state or settings.state_path)
        addrs, diags = lookup_all_resource_instance_addrs(state_file.state)
        if diags.has_errors():
            _fatal('failed to lookup resource instance addresses', diags.err())

        report = sweep(provider, state_file.state, addrs)

    _print_report(report)
    if strict and not report.ok:
        raise typer.Exit(code=1)


@app.command('list')
def list_command(
        state: Optional[str] = typer.Option(None, '--state', '-s', help='State file to read.'),
        show_all: bool = typer.Option(False, '--all', '-a', help='Include data resources and deposed-only instances.'),
):
    """List the resource instances a sweep would check, without contacting the provider."""
    settings = get_settings()
    configure_logging(settings.log_level)

    state_file = _read_state(state or settings.state_path)
    addrs, diags = lookup_all_resource_instance_addrs(state_file.state)
    if diags.has_errors():
        _fatal('failed to lookup resource instance addresses', diags.err())

    for addr in addrs:
        instance = state_file.state.resource_instance(addr)
        if not show_all and (not addr.managed or not instance.has_current()):
            continue
        res_id = instance.current.id if instance.has_current() else None
        typer.echo(f'{addr}\t{res_id or "-"}')


def main():
    app()

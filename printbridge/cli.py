"""Command-line interface for PrintBridge."""

import logging
import sys
from pathlib import Path

import click

from printbridge import __version__
from printbridge.commands import CommandFailure
from printbridge.config import get_config
from printbridge.dispatcher import PrintJob
from printbridge.printing.base import PrintBridgeError
from printbridge.services import build_services
from printbridge.spool import MonitorState


def setup_logging(level: str) -> None:
    """Set up logging configuration.

    Args:
        level: Log level string.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool):
    """PrintBridge - Local print bridge with spool recovery.

    Accepts PDFs and images, fits them to the page and prints them on the
    configured printer, while watching the print spool for stuck jobs.
    """
    setup_logging("DEBUG" if verbose else get_config().log_level)
    ctx.ensure_object(dict)


def _services(ctx: click.Context):
    if "services" not in ctx.obj:
        ctx.obj["services"] = build_services()
    return ctx.obj["services"]


@main.command()
@click.option("--host", default=None, help="Bind address (default from config)")
@click.option("--port", type=int, default=None, help="Port (default from config)")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None):
    """Start the HTTP server and the spool monitor."""
    import uvicorn

    from printbridge.api.main import create_app

    services = _services(ctx)
    config = services.config
    click.echo(f"Starting PrintBridge on {host or config.host}:{port or config.port} (Ctrl+C to stop)")
    uvicorn.run(create_app(services), host=host or config.host, port=port or config.port)


@main.command("print")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--copies", "-n", type=click.IntRange(min=1), default=1, help="Number of copies")
@click.option("--rotation", "-r", type=int, default=0, help="Clockwise rotation in degrees")
@click.pass_context
def print_command(ctx: click.Context, file: Path, copies: int, rotation: int):
    """Print FILE on the configured printer."""
    services = _services(ctx)
    try:
        job = PrintJob.for_file(file, copies=copies, rotation=rotation)
        result = services.dispatcher.dispatch(job)
    except PrintBridgeError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    pages = f", {result.pages} page(s)" if result.pages is not None else ""
    click.echo(f"Job {result.job_id} sent ({result.strategy.value} path{pages})")


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--page", "-p", type=click.IntRange(min=0), default=0, help="Zero-based page index")
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Output PNG (default: <file>.preview.png)",
)
@click.pass_context
def preview(ctx: click.Context, file: Path, page: int, output: Path | None):
    """Render one page of a PDF to a PNG preview."""
    services = _services(ctx)
    output = output or file.with_suffix(".preview.png")
    try:
        png = services.dispatcher.render_preview(file, page)
    except PrintBridgeError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    output.write_bytes(png)
    click.echo(f"Preview written to {output}")


@main.command()
@click.pass_context
def printers(ctx: click.Context):
    """List available printers."""
    services = _services(ctx)
    printer = services.dispatcher.printer
    configured = services.settings.get_settings().printer_name

    click.echo("\n=== Available Printers ===\n")

    if not printer.is_available:
        click.echo("Printing is not available on this host.")
        sys.exit(1)

    printers_list = printer.get_printers()
    if not printers_list:
        click.echo("No printers found.")
        return

    for p in printers_list:
        marker = "* " if p.get("is_default") else "  "
        selected = " (selected)" if p["name"] == configured else ""
        click.echo(f"{marker}{p['name']}{selected}")

    click.echo("\n(* = default printer)")


@main.command()
@click.pass_context
def settings(ctx: click.Context):
    """Show the runtime settings."""
    services = _services(ctx)
    current = services.settings.get_settings()

    click.echo("\n=== PrintBridge Settings ===\n")
    click.echo(f"Settings file: {services.settings.path}")
    click.echo(f"Printer: {current.printer_name or '(default)'}")
    click.echo(f"Auto-clean: {'enabled' if current.auto_clean_enabled else 'disabled'}")
    click.echo(f"Auto-clean timeout: {current.auto_clean_timeout_minutes} min")
    click.echo(f"Preview: {'enabled' if current.preview_enabled else 'disabled'}")
    click.echo(f"Spool directory: {services.config.spool_dir}")


@main.command()
@click.option("--printer", default=None, help="Printer name ('' = system default)")
@click.option("--auto-clean/--no-auto-clean", default=None, help="Enable spool auto-clean")
@click.option("--timeout", type=click.IntRange(min=1), default=None, help="Auto-clean timeout in minutes")
@click.option("--preview/--no-preview", default=None, help="Enable document previews")
@click.pass_context
def configure(
    ctx: click.Context,
    printer: str | None,
    auto_clean: bool | None,
    timeout: int | None,
    preview: bool | None,
):
    """Change the runtime settings."""
    changes = {
        "printer_name": printer,
        "auto_clean_enabled": auto_clean,
        "auto_clean_timeout_minutes": timeout,
        "preview_enabled": preview,
    }
    changes = {key: value for key, value in changes.items() if value is not None}
    if not changes:
        click.echo("Nothing to change. See 'printbridge configure --help'.")
        return

    services = _services(ctx)
    services.settings.update_settings(**changes)
    click.echo(f"Settings saved to {services.settings.path}")


@main.command("check-spool")
@click.pass_context
def check_spool(ctx: click.Context):
    """Check the spool for stuck jobs without cleaning it."""
    services = _services(ctx)
    state = services.monitor.scan()

    if state is MonitorState.NEEDS_CLEANUP:
        click.echo("Spool has stuck jobs. Run 'printbridge clean-spool' to clear it.")
        sys.exit(2)
    elif state is MonitorState.CLEAN:
        click.echo("Spool is healthy.")
    else:
        click.echo("Spool check skipped (auto-clean disabled or spool not accessible).")


@main.command("clean-spool")
@click.confirmation_option(prompt="Stop the spooler and delete all queued jobs?")
@click.pass_context
def clean_spool(ctx: click.Context):
    """Stop the spooler, delete queued jobs and start it again."""
    services = _services(ctx)
    try:
        results = services.monitor.clean_spool()
    except CommandFailure as e:
        click.echo(f"Cleanup failed: {e}", err=True)
        sys.exit(1)

    for result in results:
        click.echo(f"+ {result.command}")
    click.echo("Spooler cleaned and restarted.")


if __name__ == "__main__":
    main()

"""Hotserve CLI entry point."""

import asyncio
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from hotserve.config import DEFAULT_EXTENSIONS, DEFAULT_IP, DEFAULT_PORT, ServerConfig
from hotserve.errors import HotServeError

console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, console=console)],
    )


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Hotserve - static development server with live reload."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging(verbose)


@cli.command()
@click.argument("directory", required=False, type=click.Path(file_okay=False))
@click.option("--port", "-p", default=DEFAULT_PORT, show_default=True, help="Port to bind to")
@click.option("--ip", "-i", default=DEFAULT_IP, show_default=True, help="IP to bind to, * for all")
@click.option(
    "--watch",
    "-w",
    multiple=True,
    default=DEFAULT_EXTENSIONS,
    show_default=True,
    help="File extensions to watch for hot reload (e.g. .html,.js,.css)",
)
@click.option(
    "--inject",
    "-j",
    multiple=True,
    default=DEFAULT_EXTENSIONS,
    show_default=True,
    help="File extensions to inject the hot reload script into (e.g. .html,.php)",
)
@click.option("--access-log/--no-access-log", default=True, help="Log every request")
def httpd(
    directory: str | None,
    port: int,
    ip: str,
    watch: tuple[str, ...],
    inject: tuple[str, ...],
    access_log: bool,
) -> None:
    """Serve DIRECTORY (default: current directory) with live reload."""
    from hotserve.server import DevServer, ShutdownOutcome

    try:
        config = ServerConfig.from_directory(
            directory,
            ip=ip,
            port=port,
            watch_exts=watch,
            inject_exts=inject,
        )
        server = DevServer(config, access_log=access_log)
        console.print(f"[bold green]Serving {config.root} on {config.display_url}[/bold green]")
        console.print("Press Ctrl+C to stop")
        outcome = asyncio.run(server.serve(install_signal_handlers=True))
    except HotServeError as e:
        raise click.ClickException(str(e)) from e

    if outcome is ShutdownOutcome.FORCED:
        console.print("[yellow]Server stopped, open connections were closed[/yellow]")
    else:
        console.print("[green]Server stopped[/green]")


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()

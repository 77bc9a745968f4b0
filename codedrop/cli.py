#!/usr/bin/env python3
"""
codedrop CLI

Command-line interface for sending a file to one peer with a share code.

Usage:
    codedrop send FILE                      # Share a file, prints a code
    codedrop receive CODE --host HOST       # Receive the file for a code
    codedrop config                         # Show effective configuration
    codedrop config --template              # Print a starter config.json
"""

import asyncio
import json
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn
from rich.panel import Panel
from rich.logging import RichHandler

from .config import EXAMPLE_CONFIG, Config, load_config
from .file.source import FileSource
from .session import SendSession, ReceiveSession, is_valid_code
from .transfer.errors import FileReadError, TransferError

console = Console()


def setup_logging(level: str = 'INFO', verbose: bool = False):
    """Configure logging with rich output."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False),
              default=None, help='JSON config file')
@click.pass_context
def cli(ctx, verbose, config_path):
    """codedrop - send a file to a peer with a six-digit code."""
    config = load_config(Path(config_path) if config_path else None)
    setup_logging(config.log_level, verbose)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command()
@click.argument('file_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--host', default=None, help='Address to listen on')
@click.option('--port', type=int, default=None, help='TCP port to listen on')
@click.option('--chunk-size', type=int, default=None, help='Chunk size in bytes')
@click.option('--interval', type=float, default=None, help='Seconds between chunks')
@click.pass_context
def send(ctx, file_path, host, port, chunk_size, interval):
    """Share a file and wait for the receiver."""
    config: Config = ctx.obj['config']
    if host is not None:
        config.host = host
    if port is not None:
        config.port = port
    if chunk_size is not None:
        config.chunk_size = chunk_size
    if interval is not None:
        config.send_interval = interval

    async def run():
        source = await FileSource.from_path(Path(file_path))

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            console=console,
        ) as progress:
            task = progress.add_task("Waiting for receiver...", total=100)

            def update_progress(percent: float):
                p = session.progress
                progress.update(
                    task,
                    completed=percent,
                    description=f"Sending... ({p.done_chunks}/{p.total_chunks} chunks)"
                )

            session = SendSession(config, source, on_progress=update_progress)
            await session.start()

            console.print(Panel.fit(
                f"[bold green]Ready to send[/bold green]\n\n"
                f"File: [cyan]{source.name}[/cyan]\n"
                f"Size: [yellow]{format_size(source.size)}[/yellow]\n"
                f"Port: [yellow]{session.port}[/yellow]\n\n"
                f"[bold]Share code:[/bold] [green]{session.code}[/green]",
                title="codedrop"
            ))

            try:
                await session.wait()
                progress.update(task, completed=100, description="Done!")
            finally:
                await session.stop()

        console.print(f"\n[green]✓ Sent {source.name}[/green]")

    _run(run())


@cli.command()
@click.argument('code')
@click.option('--host', default='127.0.0.1', help='Sender address')
@click.option('--port', type=int, default=None, help='Sender TCP port')
@click.option('--output', '-o', type=click.Path(file_okay=False), default=None,
              help='Output directory')
@click.pass_context
def receive(ctx, code, host, port, output):
    """Receive a file using the sender's share code."""
    config: Config = ctx.obj['config']
    if not is_valid_code(code):
        console.print(f"[red]Invalid code: {code} (expected 6 digits)[/red]")
        ctx.exit(1)
    if output is not None:
        config.output_dir = Path(output)
    if port is None:
        port = config.port

    async def run():
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            console=console,
        ) as progress:
            task = progress.add_task("Connecting...", total=100)

            def update_progress(percent: float):
                p = session.progress
                progress.update(
                    task,
                    completed=percent,
                    description=f"Receiving {p.file_name}... "
                                f"({p.done_chunks}/{p.total_chunks} chunks)"
                )

            session = ReceiveSession(config, on_progress=update_progress)
            result = await session.receive(host, port, code)
            progress.update(task, completed=100, description="Done!")

        console.print(f"\n[green]✓ Saved to: {result}[/green]")

    _run(run())


@cli.command('config')
@click.option('--template', is_flag=True, help='Print a starter config file instead')
@click.pass_context
def show_config(ctx, template):
    """Show the effective configuration."""
    if template:
        console.print_json(EXAMPLE_CONFIG)
        return
    config: Config = ctx.obj['config']
    console.print_json(json.dumps(config.to_dict()))


def _run(coro):
    """Run a command coroutine, turning transfer failures into exit code 1."""
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        raise SystemExit(1)
    except FileReadError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise SystemExit(1)
    except (TransferError, ConnectionError) as e:
        console.print(f"\n[red]✗ Transfer failed: {e}[/red]")
        raise SystemExit(1)


def format_size(bytes_count: float) -> str:
    """Format bytes as human-readable size."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024
    return f"{bytes_count:.1f} PB"


if __name__ == '__main__':
    cli()

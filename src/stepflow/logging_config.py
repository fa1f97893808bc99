"""Rich logging configuration for stepflow."""

from loguru import logger
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.traceback import install as install_rich_traceback
from typing import Optional


def setup_rich_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    show_path: bool = True,
    show_time: bool = True,
    rich_tracebacks: bool = True,
    console: Optional[Console] = None,
    file_level: str = "DEBUG",
    rotation: str = "10 MB",
    retention: str = "7 days",
    compression: str = "zip"
) -> Console:
    """Setup rich logging with loguru.

    Args:
        level: Console logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file for detailed logs
        show_path: Show file path in console logs
        show_time: Show timestamp in console logs
        rich_tracebacks: Enable rich tracebacks with syntax highlighting
        console: Optional Rich Console instance (creates new if None)
        file_level: Logging level of the file sink
        rotation: File rotation size or interval
        retention: How long rotated files are kept
        compression: Compression format of rotated files

    Returns:
        Console instance used for logging
    """
    if console is None:
        console = Console()

    if rich_tracebacks:
        install_rich_traceback(
            show_locals=False,
            width=console.width,
            extra_lines=3,
            theme="monokai",
            word_wrap=True,
            console=console
        )

    # Remove default loguru handlers
    logger.remove()

    logger.add(
        RichHandler(
            console=console,
            rich_tracebacks=rich_tracebacks,
            markup=False,
            show_time=show_time,
            show_level=True,
            show_path=show_path
        ),
        format="{message}",
        level=level
    )

    if log_file:
        logger.add(
            log_file,
            rotation=rotation,
            retention=retention,
            compression=compression,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            level=file_level
        )

    return console


def setup_logging_from_settings(settings, console: Optional[Console] = None) -> Console:
    """Configure logging from a Settings instance."""
    return setup_rich_logging(
        level=settings.log_level,
        log_file=settings.log_file,
        show_path=settings.log_show_path,
        show_time=settings.log_show_time,
        rich_tracebacks=settings.log_rich_tracebacks,
        console=console,
        file_level=settings.log_file_level,
        rotation=settings.log_file_rotation,
        retention=settings.log_file_retention,
        compression=settings.log_file_compression
    )


def log_with_panel(
    message: str,
    title: str = "",
    console: Optional[Console] = None,
    border_style: str = "blue"
):
    """Print a message in a rich panel for better visibility."""
    if console is None:
        console = Console()

    console.print(Panel(message, title=title, border_style=border_style))


def log_run_summary(run_result, console: Optional[Console] = None):
    """Print the per-node outcome of a run as a table.

    Args:
        run_result: RunResult returned by ExecutionEngine.execute
        console: Console instance (creates new if None)
    """
    if console is None:
        console = Console()

    table = Table(
        title=f"Run {run_result.run_id}: {run_result.status.value}",
        show_header=True,
        header_style="bold magenta"
    )
    table.add_column("Node", style="cyan", no_wrap=True)
    table.add_column("Status", style="magenta")
    table.add_column("Output")

    for node_id, result in run_result.results.items():
        status = "[green]ok[/green]" if result.success else "[red]error[/red]"
        detail = result.output if result.success else result.error
        table.add_row(node_id, status, (detail or "")[:80])

    for node_id in run_result.unreached:
        table.add_row(node_id, "[yellow]skipped[/yellow]", "on a cycle")

    console.print(table)

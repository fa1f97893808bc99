"""Command line entry point: serve the current directory's workflow project."""

from typing import List, Optional
import socket
import sys
import threading
import webbrowser
import uvicorn
from loguru import logger

from .exceptions import StepflowError
from .logging_config import setup_logging_from_settings, log_with_panel
from .settings import Settings

def find_available_port(start_port: int, host: str = "127.0.0.1", max_attempts: int = 20) -> int:
    """Find the first port that can be bound, counting up from start_port.

    Args:
        start_port: First port to try
        host: Interface to bind
        max_attempts: Number of consecutive ports to try

    Returns:
        A free port

    Raises:
        StepflowError: If every port in the range is taken
    """
    for port in range(start_port, start_port + max_attempts):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            try:
                sock.bind((host, port))
            except OSError:
                logger.debug(f"Port {port} is in use")
                continue
            return port

    raise StepflowError(f"No available port in range {start_port}-{start_port + max_attempts - 1}")


def parse_settings(argv: Optional[List[str]] = None) -> Settings:
    """Build settings from the command line, environment and .env file."""
    args = list(sys.argv[1:] if argv is None else argv)
    return Settings(_cli_parse_args=args, _cli_prog_name="stepflow")


def server_url(host: str, port: int) -> str:
    if host in ("0.0.0.0", "127.0.0.1", "::"):
        host = "localhost"
    return f"http://{host}:{port}"


def main(argv: Optional[List[str]] = None) -> int:
    """Start the service.

    Returns:
        0 on clean shutdown, 1 if the server could not start
    """
    from app import create_app

    try:
        settings = parse_settings(argv)
        console = setup_logging_from_settings(settings)

        port = find_available_port(settings.api_port, settings.api_host, settings.max_port_attempts)
        if port != settings.api_port:
            logger.warning(f"Port {settings.api_port} is in use, using {port}")

        url = server_url(settings.api_host, port)
        log_with_panel(
            f"Project: {settings.project_path}\nServer:  {url}",
            title=f"{settings.app_name} v{settings.app_version}",
            console=console
        )

        app = create_app(settings)
        if settings.browser:
            threading.Timer(1.0, webbrowser.open, args=(url,)).start()

        uvicorn.run(app, host=settings.api_host, port=port, log_level=settings.log_level.lower())
    except KeyboardInterrupt:
        return 0
    except Exception as e:
        logger.exception(f"Failed to start server: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())

"""CLI command for running the API server.

Usage:
    quill serve
    quill serve --port 3001 --host 0.0.0.0
    quill serve --reload --log-level debug
"""

from __future__ import annotations

import typer

from quill.config import settings

app = typer.Typer(help="Run the Quill API server")


@app.callback(invoke_without_command=True)
def serve(
    host: str = typer.Option(settings.host, "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(settings.port, "--port", "-p", help="Port to listen on"),
    reload: bool = typer.Option(
        False,
        "--reload",
        "-r",
        help="Enable auto-reload for development",
    ),
    log_level: str = typer.Option(
        "info",
        "--log-level",
        "-l",
        help="Log level: debug, info, warning, error",
    ),
) -> None:
    """Run the Quill API server.

    Starts the uvicorn server with the FastAPI application factory.
    """
    import uvicorn

    typer.echo("Starting Quill server...")
    typer.echo(f"  Host: {host}")
    typer.echo(f"  Port: {port}")
    typer.echo(f"  Cache backend: {settings.cache_backend}")
    typer.echo(f"  Log level: {log_level}")
    if reload:
        typer.echo("  Reload: enabled")
    typer.echo()

    uvicorn.run(
        app="quill.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=log_level.lower(),
    )

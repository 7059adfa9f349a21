"""CLI commands for Quill.

Provides command-line interface using Typer:
- quill serve: Run the API server
- quill cache: Inspect and maintain the response cache

Usage:
    quill --help
    quill serve --port 3001
    quill cache check
    quill cache invalidate 'quill:*posts*'
"""

import typer

from quill.cli.cache_cmd import app as cache_app
from quill.cli.serve import app as serve_app

# Main CLI application
app = typer.Typer(
    name="quill",
    help="Quill: blog API with read-through response caching",
    no_args_is_help=True,
)

app.add_typer(serve_app, name="serve")
app.add_typer(cache_app, name="cache")


@app.callback()
def callback() -> None:
    """Quill: blog API with read-through response caching."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()

"""Concert Agent CLI using Typer."""

import logging
import os
from pathlib import Path

import typer
from dotenv import load_dotenv
from rich.logging import RichHandler

from concert_agent import __version__
from concert_agent.cli.ingest import concerts_app, images_app, scrape_app

# Load .env file from current directory or project root
_env_paths = [
    Path.cwd() / ".env",
    Path(__file__).parent.parent.parent / ".env",
]
for _env_path in _env_paths:
    if _env_path.exists():
        load_dotenv(_env_path)
        break

app = typer.Typer(
    name="concert-agent",
    help="Concert Agent - batch ingestion of Stockholm concert and comedy listings",
    add_completion=False,
)
app.add_typer(scrape_app, name="scrape")
app.add_typer(images_app, name="images")
app.add_typer(concerts_app, name="concerts")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _check_backend_config() -> None:
    """Display which extraction backend is configured."""
    backend = os.environ.get("EXTRACTION_BACKEND", "firecrawl")
    if backend == "firecrawl":
        status = "configured" if os.environ.get("FIRECRAWL_API_KEY") else "missing FIRECRAWL_API_KEY"
    else:
        provider = os.environ.get("AI_PROVIDER", "anthropic")
        key_name = "OPENAI_API_KEY" if provider == "openai" else "ANTHROPIC_API_KEY"
        status = f"{provider}, " + ("configured" if os.environ.get(key_name) else f"missing {key_name}")
    typer.echo(f"  Extraction backend: {backend} ({status})")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(
        False, "--reload", "-r", help="Enable auto-reload for development"
    ),
) -> None:
    """Start the scrape trigger web server."""
    import uvicorn

    typer.echo(f"Starting Concert Agent on http://{host}:{port}")
    _check_backend_config()
    typer.echo("Press Ctrl+C to stop the server")
    typer.echo("")

    uvicorn.run(
        "concert_agent.web.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


@app.command()
def init_db() -> None:
    """Initialize the database (create tables)."""
    from concert_agent.db.engine import get_database_url
    from concert_agent.db.engine import init_db as db_init

    typer.echo(f"Initializing database at {get_database_url()}...")
    db_init()
    typer.echo("Database initialized successfully!")


@app.command()
def version() -> None:
    """Show the Concert Agent version."""
    typer.echo(f"Concert Agent v{__version__}")


if __name__ == "__main__":
    app()

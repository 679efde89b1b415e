"""Veriform CLI entry point."""

import click

from veriform.config import VeriformConfig, configure_logging


@click.group()
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    help="Logging level (default: VERIFORM_LOG_LEVEL or info).",
)
def cli(log_level: str | None):
    """Veriform: declarative form validation, enforced on both sides."""
    configure_logging(log_level or VeriformConfig.from_env().log_level)


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address.")
@click.option("--port", default=None, type=int, help="Port (default: VERIFORM_PORT or 8000).")
@click.option("--reload", is_flag=True, default=False, help="Reload on code changes.")
def serve(host: str, port: int | None, reload: bool):
    """Run the Veriform API with uvicorn."""
    import uvicorn

    config = VeriformConfig.from_env()
    uvicorn.run(
        "veriform.api.app:app",
        host=host,
        port=port or config.port,
        reload=reload,
        log_level=config.log_level,
    )


# Register subcommand groups
from veriform.cli.forms_cmd import forms  # noqa: E402

cli.add_command(forms)

"""Command line entry point: ``x402-registry [serve|migrate]``."""

import sys

import click
import uvicorn
from alembic import command
from alembic.config import Config

from .platform.settings import Settings


@click.group(invoke_without_command=True)
@click.pass_context
def main(ctx: click.Context):
    """Run the registry API. Without a subcommand, ``serve`` runs."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(serve)


@main.command()
@click.option("--reload", is_flag=True)
@click.option("--port", type=int, default=None, help="Overrides APP_HTTP__PORT.")
def serve(reload=False, port=None):
    settings = Settings()

    uvicorn.run(
        "x402_registry:app",
        loop="uvloop",
        factory=True,
        host=settings.app_http.host,
        port=port or settings.app_http.port,
        log_level=settings.app_http.log_level.lower(),
        reload=reload,
    )


@main.command()
@click.option("--config", "config_path", default="alembic.ini", show_default=True)
@click.option("--revision", default="head", show_default=True)
def migrate(config_path, revision):
    """Upgrade the primary database schema (PRIMARY_DB__* variables)."""
    command.upgrade(Config(config_path), revision)


if __name__ == "__main__":
    sys.exit(main())

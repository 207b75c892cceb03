"""Click CLI: run the router, or sign a webhook body for local testing."""

from __future__ import annotations

import logging
from typing import BinaryIO

import click

from src.webhook.line import sign_body


@click.group()
def cli() -> None:
    """LINE / Workers AI chat router."""


@cli.command()
@click.option("--host", default="0.0.0.0", show_default=True, help="Bind address.")
@click.option("--port", default=8787, show_default=True, type=int, help="Bind port.")
@click.option(
    "--log-level",
    default="info",
    show_default=True,
    type=click.Choice(["debug", "info", "warning", "error"]),
)
def serve(host: str, port: int, log_level: str) -> None:
    """Run the HTTP server (configuration comes from the environment)."""
    import uvicorn

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "src.server.app:create_app_from_env",
        factory=True,
        host=host,
        port=port,
        log_level=log_level,
    )


@cli.command()
@click.argument("body_file", type=click.File("rb"))
@click.option(
    "--secret",
    envvar="LINE_CHANNEL_SECRET",
    required=True,
    help="Channel secret (defaults to $LINE_CHANNEL_SECRET).",
)
def sign(body_file: BinaryIO, secret: str) -> None:
    """Print the x-line-signature value for BODY_FILE ('-' for stdin)."""
    click.echo(sign_body(body_file.read(), secret))


"""CLI commands for inspecting review bot configuration and comment markers."""

from __future__ import annotations

import dataclasses
import logging
from enum import Enum
from pathlib import Path

import typer

from .commands import help_text
from .config import RunnerConfig, load_config
from .errors import ConfigurationError
from .markers import MARKER_KINDS

APP_HELP = "Review bot automation tools."
DEFAULT_CONFIG_NAME = "revbot.yaml"

app = typer.Typer(help=APP_HELP)


@app.callback()
def main(
    log_level: str = typer.Option(
        "WARNING",
        "--log-level",
        "-l",
        help="Logging level (DEBUG, INFO, WARNING, ERROR).",
    ),
) -> None:
    """Configure logging for every command."""
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise typer.BadParameter(f"Unknown log level: {log_level}")
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _load(config: str) -> RunnerConfig:
    config_path = Path(config)
    try:
        return load_config(config_path)
    except ConfigurationError as error:
        typer.echo(f"Invalid configuration: {error}", err=True)
        raise typer.Exit(code=1) from error


@app.command("check-config")
def check_config(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the bot configuration file.",
    ),
) -> None:
    """Validate the configuration and summarise the bots it defines."""
    runner_config = _load(config)
    typer.echo(f"Storage: {runner_config.storage.path}")
    typer.echo(f"Workers: {runner_config.scheduler.workers}")
    if not runner_config.bots:
        typer.echo("No bots configured.")
        return
    for bot_name, bot_config in sorted(runner_config.bots.items()):
        typer.echo(f"Bot {bot_name} (storage {runner_config.storage_folder(bot_name)}):")
        for repository_name, repository in sorted(bot_config.repositories.items()):
            labels = ", ".join(sorted(repository.labels)) or "none"
            typer.echo(f"- {repository_name}: census {repository.census}, labels {labels}")


def _display(value: object) -> str:
    return value.value if isinstance(value, Enum) else str(value)


@app.command()
def markers(
    path: Path = typer.Argument(..., help="File holding a comment body."),
) -> None:
    """Print every well-formed marker found in a comment body."""
    if not path.exists():
        raise typer.BadParameter(f"File not found: {path}")
    body = path.read_text(encoding="utf-8")
    found = 0
    for kind_name, kind in MARKER_KINDS.items():
        for record in kind.find_all(body):
            found += 1
            fields = ", ".join(f"{key}={_display(value)}" for key, value in dataclasses.asdict(record).items())
            typer.echo(f"{kind_name}: {fields}")
    if not found:
        typer.echo("No markers found.")


@app.command("help-text")
def help_text_command(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the bot configuration file.",
    ),
    bot: str = typer.Option(..., "--bot", "-b", help="Name of the configured bot."),
) -> None:
    """Print the reply a bot gives to `/help`."""
    runner_config = _load(config)
    bot_config = runner_config.bots.get(bot)
    if bot_config is None:
        raise typer.BadParameter(f"Unknown bot: {bot}")
    typer.echo(help_text(bot_config.external), nl=False)


if __name__ == "__main__":  # pragma: no cover
    app()

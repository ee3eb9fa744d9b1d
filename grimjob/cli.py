"""Diagnostic CLI for grimjob."""

import typer

from grimjob.config import get_config
from grimjob.core.codec import dump_json

app = typer.Typer(
    name="grimjob",
    help="grimjob diagnostics",
    no_args_is_help=True,
)


def calm_down() -> None:
    print("Calm down, yo.")


@app.command("flip")
def flip() -> None:
    """(╯°□°)╯︵ ┻━┻"""
    calm_down()


@app.command("info")
def info() -> None:
    """Print the Redis server's INFO output as JSON."""
    config = get_config()
    try:
        typer.echo(dump_json(config.redis_info()))
    finally:
        config.close()


def main() -> None:
    app()


if __name__ == "__main__":
    main()

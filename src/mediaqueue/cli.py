"""mediaqueue CLI - command-line interface for the offline upload queue."""

import typer

from mediaqueue import __version__
from mediaqueue.cli_commands.queue import queue_app
from mediaqueue.cli_commands.status import status_command

app = typer.Typer(
    name="mediaqueue",
    help="mediaqueue - offline upload queue for photos and videos.",
    no_args_is_help=True,
)

# Register subcommands
app.add_typer(queue_app, name="queue")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"mediaqueue {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """mediaqueue - offline upload queue."""
    pass


# Register status as a direct command on the main app
app.command(name="status")(status_command)


if __name__ == "__main__":
    app()

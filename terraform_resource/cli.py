"""
Terraform Resource CLI - Concourse check, in and out steps.

Every command reads its JSON request from stdin and writes its JSON response
to stdout. Logs and errors go to stderr.
"""

import json
import logging
import sys
from pathlib import Path

import typer
from rich.console import Console

from .errors import TerraformResourceError
from .models import CheckRequest, InRequest, OutRequest
from .runner import CheckRunner, InRunner, OutRunner, parse_request
from .settings import get_settings

# Setup
app = typer.Typer(
    name="terraform-resource",
    help="Concourse resource for provisioning environments with Terraform",
    add_completion=False,
)
# stdout is reserved for the protocol response
console = Console(stderr=True)


def configure_logging():
    """Configure logging based on settings."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


# Configure logging on module import
configure_logging()


def _read_request() -> str:
    raw = sys.stdin.read()
    if not raw.strip():
        console.print("[bold red]✗ Error:[/bold red] No request on stdin")
        raise typer.Exit(code=1)
    return raw


def _handle_command_error(e: Exception, command_type: str) -> None:
    """Print a step failure and exit non-zero.

    Args:
        e: Exception that occurred
        command_type: Step name for the error message

    Raises:
        SystemExit: Always exits with code 1
    """
    console.print(f"\n[bold red]✗ {command_type.capitalize()} failed:[/bold red] {e}")
    raise typer.Exit(code=1)


@app.command()
def check():
    """Report the current version of the environment."""
    try:
        request = parse_request(CheckRequest, _read_request())
        versions = CheckRunner().run(request)
    except TerraformResourceError as e:
        _handle_command_error(e, "check")
    typer.echo(json.dumps(versions))


@app.command(name="in")
def in_cmd(
    output_dir: Path = typer.Argument(..., help="Directory to write name, metadata and state files into"),
):
    """Fetch outputs of an environment into OUTPUT_DIR."""
    try:
        request = parse_request(InRequest, _read_request())
        response = InRunner(output_dir).run(request)
    except TerraformResourceError as e:
        _handle_command_error(e, "in")
    typer.echo(response.to_json())


@app.command()
def out(
    sources_dir: Path = typer.Argument(..., help="Directory holding the build's input sources"),
):
    """Apply or destroy an environment from SOURCES_DIR."""
    try:
        request = parse_request(OutRequest, _read_request())
        response = OutRunner(sources_dir).run(request)
    except TerraformResourceError as e:
        _handle_command_error(e, "out")
    typer.echo(response.to_json())


@app.command()
def version():
    """Show terraform-resource version."""
    from . import __version__

    console.print(f"terraform-resource version: [bold]{__version__}[/bold]")


if __name__ == "__main__":
    app()

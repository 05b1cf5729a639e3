"""CLI interface for CDN Media using Typer.

Main entry point for the command line tool. Handles command definitions,
argument parsing, progress bars, and Rich console output.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

import typer
from rich.logging import RichHandler
from rich.progress import BarColumn, DownloadColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .chunked import upload_large
from .config import ConfigurationError, load_config, validate_config
from .errors import ApiError
from .models import MediaConfig, UploadResult
from .signing import api_sign_request
from .transformation import compile_transformation
from .uploader import destroy, upload
from .url import build_url
from .utils import (
    console,
    copy_to_clipboard,
    format_file_size,
    format_output,
    print_error,
    print_success,
    print_warning,
)

# Files above this size are uploaded in chunks unless --chunk-size says otherwise
LARGE_FILE_THRESHOLD = 100_000_000


app = typer.Typer(
    name="cdn-media",
    help="Build delivery URLs and upload files to the media CDN",
    add_completion=False,
)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log HTTP requests and chunk progress",
    ),
) -> None:
    """CDN Media command line tool."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def parse_value(raw: str) -> Any:
    """Interpret a command line value as int, float, bool or string."""
    lowered = raw.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    for cast in (int, float):
        try:
            return cast(raw)
        except ValueError:
            pass
    return raw


def parse_pairs(pairs: list[str] | None) -> dict[str, Any]:
    """Turn ``key=value`` arguments into a dict.

    Raises:
        typer.BadParameter: If an argument has no ``=``
    """
    result: dict[str, Any] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got '{pair}'")
        result[key] = parse_value(value)
    return result


def get_config(require_credentials: bool = False) -> MediaConfig:
    config = load_config()
    validate_config(config, require_credentials=require_credentials)
    return config


@app.command()
def url(
    public_id: str = typer.Argument(..., help="Public id (or remote URL for fetch)"),
    option: Optional[list[str]] = typer.Option(
        None,
        "--option",
        "-o",
        help="Transformation or URL option as key=value (repeatable)",
    ),
    sign: bool = typer.Option(
        False,
        "--sign",
        "-s",
        help="Sign the URL",
    ),
    copy: bool = typer.Option(
        False,
        "--copy",
        "-c",
        help="Copy the URL to the clipboard",
    ),
) -> None:
    """Build a delivery URL for a public id."""
    try:
        config = get_config()
        options = parse_pairs(option)
        if sign:
            config = config.with_options(sign_url=True)

        compiled = compile_transformation(dict(options), config)
        delivery_url = build_url(public_id, options, config)

        console.print(delivery_url, markup=False, highlight=False, soft_wrap=True)
        if compiled.transformation:
            console.print(f"[dim]Transformation: {compiled.transformation}[/dim]")
        if options:
            console.print(f"[dim]Unused options: {', '.join(sorted(options))}[/dim]")
        if copy and copy_to_clipboard(delivery_url):
            console.print("[dim]URL copied to clipboard[/dim]")

    except ConfigurationError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1)


@app.command()
def sign(
    params: list[str] = typer.Argument(..., help="Parameters to sign as key=value"),
) -> None:
    """Print the API signature for a set of parameters."""
    try:
        config = get_config(require_credentials=True)
        signature = api_sign_request(parse_pairs(params), config.api_secret, config.signature_algorithm)
        console.print(signature, highlight=False)
    except ConfigurationError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1)


@app.command("upload")
def upload_cmd(
    file: Path = typer.Argument(
        ...,
        help="File to upload",
        exists=True,
        dir_okay=False,
    ),
    public_id: Optional[str] = typer.Option(
        None,
        "--public-id",
        "-p",
        help="Public id to assign",
    ),
    folder: Optional[str] = typer.Option(
        None,
        "--folder",
        "-f",
        help="Folder to upload into",
    ),
    resource_type: str = typer.Option(
        "auto",
        "--resource-type",
        "-r",
        help="image|video|raw|auto",
    ),
    tags: Optional[list[str]] = typer.Option(
        None,
        "--tag",
        "-t",
        help="Tag to assign (repeatable)",
    ),
    chunk_size: Optional[int] = typer.Option(
        None,
        "--chunk-size",
        help="Upload in chunks of this many bytes",
        min=1,
    ),
    output_format: str = typer.Option(
        "plain",
        "--output-format",
        "-o",
        help="Output format: plain|markdown|html",
    ),
    copy: bool = typer.Option(
        False,
        "--copy",
        "-c",
        help="Copy the URL to the clipboard",
    ),
) -> None:
    """Upload a file, switching to chunked upload for large files."""
    try:
        config = get_config(require_credentials=True)
        size = file.stat().st_size
        options: dict[str, Any] = {
            "public_id": public_id,
            "folder": folder,
            "resource_type": resource_type,
            "tags": tags,
        }
        options = {k: v for k, v in options.items() if v}

        chunked = chunk_size is not None or size > LARGE_FILE_THRESHOLD
        if chunked:
            if chunk_size:
                config = config.with_options(chunk_size=chunk_size)
            response = asyncio.run(_upload_with_progress(file, size, options, config))
        else:
            with console.status(f"[bold green]Uploading {file.name} ({format_file_size(size)})..."):
                response = asyncio.run(upload(file, options, config))

        result = UploadResult.from_response(response)
        output = format_output(result, output_format)
        print_success(f"Uploaded {file.name} as {result.public_id}")
        console.print(output, markup=False, highlight=False, soft_wrap=True)
        if copy and copy_to_clipboard(output):
            console.print("[dim]Copied to clipboard[/dim]")

    except ConfigurationError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1)
    except ApiError as e:
        print_error(f"Upload failed ({e.http_code}): {e.message}")
        raise typer.Exit(1)


async def _upload_with_progress(
    file: Path,
    size: int,
    options: dict[str, Any],
    config: MediaConfig,
) -> dict[str, Any]:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        console=console,
    ) as progress:
        task = progress.add_task(f"[cyan]Uploading {file.name}...", total=size)

        def on_progress(sent: int) -> None:
            progress.update(task, completed=sent)

        return await upload_large(file, options, config, on_progress=on_progress)


@app.command("destroy")
def destroy_cmd(
    public_id: str = typer.Argument(..., help="Public id to delete"),
    resource_type: str = typer.Option(
        "image",
        "--resource-type",
        "-r",
        help="image|video|raw",
    ),
    invalidate: bool = typer.Option(
        False,
        "--invalidate",
        help="Invalidate cached copies on the CDN",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        help="Skip confirmation prompt",
    ),
) -> None:
    """Delete an uploaded resource."""
    try:
        config = get_config(require_credentials=True)
        if not force and not typer.confirm(f"Delete {public_id}?", default=False):
            console.print("[yellow]Cancelled[/yellow]")
            raise typer.Exit(0)

        with console.status("[bold red]Deleting..."):
            response = asyncio.run(destroy(
                public_id,
                {"resource_type": resource_type, "invalidate": invalidate},
                config,
            ))

        if response.get("result") == "ok":
            print_success(f"Deleted {public_id}")
        else:
            print_warning(f"Nothing deleted: {response.get('result')}")

    except ConfigurationError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1)
    except ApiError as e:
        print_error(f"Delete failed ({e.http_code}): {e.message}")
        raise typer.Exit(1)


@app.command()
def auth() -> None:
    """Validate configuration and show the active account."""
    try:
        with console.status("[bold green]Validating configuration..."):
            config = get_config(require_credentials=True)
    except ConfigurationError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1)

    print_success("Configuration valid")
    table = Table(title="Account")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Cloud name", config.cloud_name)
    table.add_row("Auth", "OAuth token" if config.oauth_token else f"API key {config.api_key}")
    table.add_row("Signature", config.signature_algorithm)
    table.add_row("Upload API", config.upload_prefix)
    table.add_row("Chunk size", format_file_size(config.chunk_size))
    console.print(table)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()

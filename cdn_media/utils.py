"""Utility functions for the CDN Media client.

Provides option handling, parameter rendering, id and timestamp
generation, clipboard operations and console output helpers.
"""

import re
import secrets
import time
from typing import Any, Iterable

import pyperclip
from rich.console import Console

from .models import UploadResult


console = Console()

REMOTE_URL_RE = re.compile(r"^ftp:|^https?:|^gs:|^s3:|^data:")


def option_consume(options: dict[str, Any], name: str, default: Any = None) -> Any:
    """Remove ``name`` from options and return its value.

    A missing or None value yields ``default``.
    """
    value = options.pop(name, None)
    return default if value is None else value


def present(value: Any) -> bool:
    """True when value is not None and renders to a non-empty string."""
    if value is None:
        return False
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    return to_param_string(value) != ""


def to_param_string(value: Any) -> str:
    """Render a scalar the way the service expects it.

    Booleans render as true/false, integral floats without a fraction.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_array(value: Any) -> list[Any]:
    """Wrap a scalar in a list; None becomes an empty list."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def clear_blank(params: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of params without None or empty values."""
    return {key: value for key, value in params.items() if present(value)}


def as_safe_bool(value: Any) -> Any:
    """Canonize truthy/falsy parameter values to 1/0, leaving others alone."""
    if value is None:
        return None
    if value is True or value in ("true", "1"):
        return 1
    if value is False or value in ("false", "0"):
        return 0
    return value


def encode_context(context: Any) -> Any:
    """Encode a context/metadata mapping as ``key=value|key=value``.

    ``=`` and ``|`` inside values are escaped with a backslash.
    """
    if not isinstance(context, dict):
        return context
    pairs = []
    for key, value in context.items():
        if isinstance(value, (list, tuple)):
            value = "[" + ",".join(f'"{v}"' for v in value) + "]"
        escaped = re.sub(r"([=|])", r"\\\1", str(value))
        pairs.append(f"{key}={escaped}")
    return "|".join(pairs)


def timestamp() -> int:
    """Current Unix time in whole seconds."""
    return int(time.time())


def random_public_id() -> str:
    """Random identifier used for boundaries and upload ids."""
    return secrets.token_hex(10)


def is_remote_url(value: Any) -> bool:
    """True for URLs the service can fetch by itself."""
    return isinstance(value, str) and REMOTE_URL_RE.match(value) is not None


def join_present(parts: Iterable[Any], separator: str) -> str:
    """Join the present parts with separator."""
    return separator.join(to_param_string(p) for p in parts if present(p))


def copy_to_clipboard(text: str) -> bool:
    """Copy text to system clipboard.

    Args:
        text: Text to copy

    Returns:
        True if successful, False otherwise
    """
    try:
        pyperclip.copy(text)
        return True
    except pyperclip.PyperclipException:
        return False


def format_output(result: UploadResult, format_type: str) -> str:
    """Format an upload result as plain URL, Markdown or HTML.

    Args:
        result: Upload result
        format_type: Output format (plain, markdown, html)

    Returns:
        Formatted output string
    """
    url = result.secure_url or result.url or ""
    if format_type == "markdown":
        return f"![{result.public_id}]({url})"
    if format_type == "html":
        return f'<img src="{url}" alt="{result.public_id}">'
    return url


def format_file_size(size_bytes: float) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted string (e.g., "1.5 MB")
    """
    for unit in ['B', 'KB', 'MB', 'GB']:
        if size_bytes < 1024:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024
    return f"{size_bytes:.1f} TB"


def print_success(message: str) -> None:
    """Print a success message with checkmark."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message with X mark."""
    console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message with exclamation mark."""
    console.print(f"[yellow]![/yellow] {message}")

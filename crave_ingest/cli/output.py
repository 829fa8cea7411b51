"""Terminal output helpers for the crave-ingest CLI.

Colour is used only when stdout is a TTY and ``NO_COLOR`` is unset.
"""

from __future__ import annotations

import os
import sys

_CODES = {
    "bold": "1",
    "dim": "2",
    "red": "31",
    "green": "32",
    "yellow": "33",
}

_STATUS_STYLES = {
    "completed": "green",
    "failed": "red",
    "aborted": "red",
}

_USE_COLOR = (
    not os.environ.get("NO_COLOR")
    and hasattr(sys.stdout, "isatty")
    and sys.stdout.isatty()
)


def style(text: str, name: str) -> str:
    if not _USE_COLOR:
        return text
    return f"\033[{_CODES[name]}m{text}\033[0m"


def bold(text: str) -> str:
    return style(text, "bold")


def dim(text: str) -> str:
    return style(text, "dim")


# ── Lines ───────────────────────────────────────────────────────────


def _line(marker: str, msg: str) -> None:
    print(f"  {marker}{msg}")


def header(title: str) -> None:
    print()
    print(bold(title))


def success(msg: str) -> None:
    _line(style("✓ ", "green"), msg)


def warn(msg: str) -> None:
    _line(style("! ", "yellow"), msg)


def error(msg: str) -> None:
    _line(style("✗ ", "red"), msg)


def info(msg: str) -> None:
    _line("", msg)


def kv(label: str, value: object, indent: int = 2) -> None:
    print(" " * indent + dim(f"{label}:") + f"  {value}")


# ── Formatting ──────────────────────────────────────────────────────


def human_bytes(n: int) -> str:
    if n < 1024:
        return f"{n}B"
    size = n / 1024
    for unit in ("KB", "MB"):
        if size < 1024:
            return f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}GB"


def status_color(status: str) -> str:
    """Colour a checkpoint or run status (in progress is yellow)."""
    return style(status, _STATUS_STYLES.get(status, "yellow"))

"""Output formatting with strict stdout/stderr discipline.

Follows `clig.dev <https://clig.dev/>`_ conventions:

* **stdout** -- data only (the rendered playlist, track or artist page),
  so ``spotterm top-tracks --json | jq`` works.
* **stderr** -- every diagnostic: the "opening your browser" notice, login
  progress, warnings and errors.
* **TTY detection** -- Rich tables when stdout is an interactive terminal,
  tab-separated plain text when piped.
* **Colour control** -- respects ``NO_COLOR``, ``TERM=dumb`` and
  ``--no-color``.

Two layers are exposed:

1. :class:`OutputManager` -- holds format preferences, the two Rich
   consoles and the quiet/verbose flags. Created once in
   :func:`~spotterm.app.main_callback` and installed via :func:`set_output`.
2. Module-level helpers (:func:`info`, :func:`error`, :func:`print_table`, ...)
   that delegate to the installed manager.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from enum import Enum
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

_NUMERIC_COLUMNS = frozenset({"#", "Tracks", "Popularity", "Followers"})


class OutputFormat(str, Enum):
    """Supported data output formats.

    ``AUTO`` resolves to ``RICH`` on an interactive, colour-capable TTY and
    to ``PLAIN`` otherwise.
    """

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class OutputManager:
    """Routes data to stdout and diagnostics to stderr.

    Args:
        format: Desired data format. ``AUTO`` resolves from TTY detection.
        no_color: Disable colour and Rich markup.
        quiet: Suppress informational stderr messages.
        verbose: Show debug messages on stderr.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose

        if format == OutputFormat.AUTO:
            self._format = (
                OutputFormat.RICH if _is_tty() and not self._no_color else OutputFormat.PLAIN
            )
        else:
            self._format = format

        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=(self._format == OutputFormat.RICH),
        )
        self._stderr = Console(
            file=sys.stderr,
            no_color=self._no_color,
            stderr=True,
        )

    @property
    def format(self) -> OutputFormat:
        """The resolved output format."""
        return self._format

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    @property
    def stderr_console(self) -> Console:
        """The Rich console bound to stderr (used by the logging handler)."""
        return self._stderr

    # ------------------------------------------------------------------ #
    # Data output (stdout)
    # ------------------------------------------------------------------ #

    def format_response(self, data: Any) -> None:
        """Render a JSON-like payload to stdout in the resolved format."""
        if self._format == OutputFormat.JSON:
            self.print_data(json.dumps(data, indent=2, ensure_ascii=False, default=str))
        elif self._format == OutputFormat.PLAIN:
            self._print_plain(data)
        else:
            json_str = json.dumps(data, indent=2, ensure_ascii=False, default=str)
            self._stdout.print(Syntax(json_str, "json", theme="monokai", word_wrap=True))

    def print_data(self, text: str) -> None:
        """Print raw text to stdout."""
        print(text, file=sys.stdout, flush=True)

    def print_table(
        self,
        headers: list[str],
        rows: list[list[str]],
        title: Optional[str] = None,
    ) -> None:
        """Print tabular data to stdout.

        JSON mode emits a list of objects keyed by header, plain mode emits
        tab-separated lines with a header row, and Rich mode draws a table.

        Args:
            headers: Column header strings.
            rows: Row data as lists of cell strings.
            title: Optional table title (Rich mode only).
        """
        if self._format == OutputFormat.JSON:
            self.print_data(
                json.dumps(
                    [dict(zip(headers, row)) for row in rows],
                    indent=2,
                    ensure_ascii=False,
                )
            )
        elif self._format == OutputFormat.PLAIN:
            self.print_data("\t".join(headers))
            for row in rows:
                self.print_data("\t".join(row))
        else:
            table = Table(title=title, header_style="bold cyan")
            for header in headers:
                table.add_column(header, justify="right" if header in _NUMERIC_COLUMNS else "left")
            for row in rows:
                table.add_row(*row)
            self._stdout.print(table)

    # ------------------------------------------------------------------ #
    # Diagnostics (stderr)
    # ------------------------------------------------------------------ #

    def info(self, message: str) -> None:
        """Informational message. Suppressed by ``--quiet``."""
        if not self._quiet:
            self._emit(message, message)

    def success(self, message: str) -> None:
        if not self._quiet:
            self._emit(message, f"[green]{message}[/green]")

    def warning(self, message: str) -> None:
        """Shown even with ``--quiet``."""
        self._emit(f"Warning: {message}", f"[yellow]Warning:[/yellow] {message}")

    def error(self, message: str) -> None:
        self._emit(f"Error: {message}", f"[bold red]Error:[/bold red] {message}")

    def suggest(self, message: str) -> None:
        """Next-step hint such as the ``--offset`` of the following page."""
        if not self._quiet:
            self._emit(f"→ {message}", f"[dim]→ {message}[/dim]")

    def debug(self, message: str) -> None:
        """Only shown with ``--verbose``. *message* is never read as markup."""
        if self._verbose:
            self._emit(f"[debug] {message}", f"[dim]\\[debug] {escape(message)}[/dim]")

    def _emit(self, plain: str, styled: str) -> None:
        # Without colour, bypass Rich so long URLs are printed unwrapped.
        if self._no_color:
            print(plain, file=sys.stderr, flush=True)
        else:
            self._stderr.print(styled)

    def _print_plain(self, data: Any) -> None:
        if isinstance(data, dict):
            for key, value in data.items():
                self.print_data(f"{key}\t{value}")
        else:
            self.print_data(str(data))


# ------------------------------------------------------------------ #
# Module-level helpers
# ------------------------------------------------------------------ #


def _is_tty() -> bool:
    isatty = getattr(sys.stdout, "isatty", None)
    return bool(isatty and isatty())


def _should_disable_color() -> bool:
    """``NO_COLOR`` (any value, even empty) or ``TERM=dumb`` turn colour off."""
    return "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb"


def configure_logging(output: OutputManager) -> None:
    """Attach a stderr handler to the ``spotterm`` logger.

    Library modules log through ``logging.getLogger(__name__)``; this only
    makes those records visible when ``--verbose`` is active.
    """
    logger = logging.getLogger("spotterm")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    if output.is_verbose:
        handler = RichHandler(
            console=output.stderr_console,
            show_path=False,
            markup=False,
            rich_tracebacks=False,
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(handler)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.WARNING)


# ------------------------------------------------------------------ #
# Process-wide manager, installed by the root callback
# ------------------------------------------------------------------ #

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed :class:`OutputManager`, creating a default one lazily."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    """Install *output* as the global :class:`OutputManager`."""
    global _output
    _output = output


def reset_output() -> None:
    """Drop the global :class:`OutputManager`. Used by the test suite."""
    global _output
    _output = None


def format_response(data: Any) -> None:
    get_output().format_response(data)


def print_data(text: str) -> None:
    get_output().print_data(text)


def print_table(
    headers: list[str],
    rows: list[list[str]],
    title: Optional[str] = None,
) -> None:
    get_output().print_table(headers, rows, title)


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def warning(message: str) -> None:
    get_output().warning(message)


def error(message: str) -> None:
    get_output().error(message)


def suggest(message: str) -> None:
    get_output().suggest(message)

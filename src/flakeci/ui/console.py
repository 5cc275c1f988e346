"""Console output formatting utilities for flakeci."""

from __future__ import annotations

import shlex
import sys
from contextlib import contextmanager
from typing import Iterator, Optional, Sequence, TextIO


class Console:
    """
    Centralized console output formatting.

    Progress is written to stderr; stdout is reserved for machine-readable
    output (results path, matrix JSON).
    """

    def __init__(self, debug: bool = False, verbose: bool = False, stream: Optional[TextIO] = None):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            verbose: If True, relay every line of subprocess stderr unfiltered
            stream: Where progress goes (defaults to sys.stderr at write time)
        """
        self.debug = debug
        self.verbose = verbose
        self._stream = stream

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stderr

    def _print(self, message: str = "") -> None:
        print(message, file=self.stream, flush=True)

    def print_run_started(self, flake: str, systems: Sequence[str], subflake_count: int) -> None:
        """Print run start information."""
        self._print("\nRUN STARTED")
        self._print(f"Flake: {flake}")
        self._print(f"Systems: {', '.join(systems) or '<none>'}")
        self._print(f"Subflakes: {subflake_count}")
        self._print()

    def print_remote_started(self, store_uri: str) -> None:
        self._print(f"\nRUNNING REMOTELY ON: {store_uri}")

    def print_subflake_started(self, name: str) -> None:
        self._print(f"\nSUBFLAKE STARTED: {name}")

    def print_subflake_skipped(self, name: str, reason: str) -> None:
        self._print(f"\nSUBFLAKE: {name}")
        self._print(f"STATUS: skipped ({reason})")

    def print_step(self, name: str, detail: str = "") -> None:
        """Print step start message."""
        self._print(f"STEP: {name}" + (f" ({detail})" if detail else ""))

    def print_step_skipped(self, name: str, reason: str) -> None:
        self._print(f"STEP: {name} (skipped: {reason})")

    def print_success(self, name: str) -> None:
        self._print(f"SUBFLAKE OK: {name}")

    def print_failure(self, name: str, reason: str, exit_code: Optional[int] = None) -> None:
        """
        Print subflake failure message.

        Args:
            name: Subflake name
            reason: Failure reason/error message
            exit_code: Optional exit code of the failing process
        """
        self._print(f"SUBFLAKE FAILED: {name}")
        if exit_code is not None:
            self._print(f"Exit code: {exit_code}")
        if self.debug:
            self._print(f"Error details: {reason}")
        else:
            # First line only outside debug mode
            error_line = reason.split("\n")[0] if reason else "Unknown error"
            self._print(f"Error: {error_line}")

    def print_command(self, argv: Sequence[str], prefix: str = "$") -> None:
        """Print a command line the user can copy-paste."""
        self._print(f"{prefix} {shlex.join(argv)}")

    def print_out_paths(self, paths: Sequence[str]) -> None:
        for p in paths:
            self._print(f"  {p}")

    def print_results(self, statuses: dict[str, str]) -> None:
        """Print final results summary."""
        self._print("\n" + "=" * 40)
        self._print("RESULTS")
        self._print("=" * 40)
        for name, status in statuses.items():
            status_display = status.upper() if status != "ok" else "SUCCESS"
            self._print(f"  {name}: {status_display}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[Sequence[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """Print an error the user can act on, without a traceback."""
        self._print(f"\nERROR: {title}")
        self._print(message)
        for detail in details or ():
            self._print(f"  {detail}")
        if suggestion:
            self._print(f"\n{suggestion}")

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=self.stream)
        else:
            self._print(f"Error: {exc}")

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._print(f"[DEBUG] {message}")

    @contextmanager
    def log_group(self, name: str, enable: bool) -> Iterator[None]:
        """Group log lines under a collapsible GitHub Actions section."""
        if enable:
            self._print(f"::group::{name}")
        try:
            yield
        finally:
            if enable:
                self._print("::endgroup::")


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console

# Console I/O and logging context passed to commands, providers and the dialog loop.

from typing import Optional

from rich.console import Console


class Context:
    """
    Thin wrapper around console I/O and logging used by tangent.

    Business logic never prints directly; it goes through a Context so output
    can be redirected or captured in tests.
    """

    def __init__(self, console: Optional[Console] = None, err_console: Optional[Console] = None, verbose: bool = False) -> None:
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(stderr=True, highlight=False)
        self.verbose = verbose

    def send_to_user(self, message: str) -> None:
        """Print a user-facing line (no markup interpretation)."""
        self.console.print(message, markup=False)

    def write(self, chunk: str) -> None:
        """Write a raw increment without a trailing newline (streamed replies)."""
        self.console.file.write(chunk)
        self.console.file.flush()

    def log(self, message: str) -> None:
        """Emit an informational line, dimmed."""
        self.console.print(f"[LOG] {message}", style="dim", markup=False)

    def debug(self, message: str) -> None:
        """Emit a diagnostic line only in verbose mode."""
        if self.verbose:
            self.console.print(f"[DEBUG] {message}", style="dim", markup=False)

    def warn(self, message: str) -> None:
        self.err_console.print(f"Warning: {message}", style="yellow", markup=False)

    def error_message(self, message: str) -> None:
        """Print an error message to stderr."""
        self.err_console.print(f"Error: {message}", style="bold red", markup=False)


"""
Console session for the install engine

The engine talks to the operator only through an ``InstallSession``: line
prompts, plain messages, a progress bar and the fixed settle waits. Tests
swap in a session that answers prompts from a script and never sleeps.
"""

import sys
import time
from dataclasses import dataclass
from typing import Callable, Optional, TextIO


@dataclass
class ProgressBar:
    """Single-line textual progress bar"""
    progress: float = 0.0
    width: int = 10
    title: str = ""

    def render(self) -> str:
        progress = min(max(self.progress, 0.0), 1.0)
        filled = int(round(progress * self.width))
        bar = "=" * filled + " " * (self.width - filled)
        return f"[{bar}] {int(progress * 100):3d}% {self.title}"


class InstallSession:
    """Synchronous operator session: one reader, one writer, one progress bar."""

    def __init__(
        self,
        input_fn: Callable[[str], str] = input,
        out: Optional[TextIO] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._input = input_fn
        self.out = out or sys.stdout
        self._sleep = sleep
        self.progress_bar = ProgressBar()

    def echo(self, message: str = "") -> None:
        print(message, file=self.out, flush=True)

    def prompt(self, message: str) -> str:
        """
        Read one line from the operator.

        Raises:
            EOFError: stdin was closed
            KeyboardInterrupt: the operator pressed Ctrl-C
        """
        return self._input(message).strip()

    def render_progress(self, title: str, fraction: float) -> None:
        self.progress_bar.title = title
        self.progress_bar.progress = fraction
        self.out.write("\r" + self.progress_bar.render())
        if fraction >= 1.0:
            self.out.write("\n")
        self.out.flush()

    def settle(self, seconds: float) -> None:
        """Flat wait for the device to catch up (re-enumeration, recovery boot)"""
        self._sleep(seconds)


__all__ = ["InstallSession", "ProgressBar"]

"""Terminal outcomes and process exit codes

Success codes live in a band starting at 32, error codes in a band starting
at 64. Every run ends with exactly one ``Outcome``.
"""

import platform
import sys
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Callable, Optional, TextIO

SUCCESS_BASE = 1 << 5
ERROR_BASE = 1 << 6


class ExitCode(IntEnum):
    SUCCESS = 0

    SUCCESS_USER_ABORT = SUCCESS_BASE + 1
    SUCCESS_BOOTLOADER_UNLOCKED = SUCCESS_BASE + 2

    ERROR_PREREQS = ERROR_BASE + 1
    ERROR_USER_INPUT = ERROR_BASE + 2
    ERROR_USB_PERMS = ERROR_BASE + 3
    ERROR_ADB = ERROR_BASE + 4
    ERROR_FASTBOOT = ERROR_BASE + 5
    ERROR_REMOTE = ERROR_BASE + 6
    ERROR_TWRP = ERROR_BASE + 7

    @property
    def is_success(self) -> bool:
        return self < ERROR_BASE


class OutcomeCategory(Enum):
    SUCCESS = "success"
    USER_ABORT = "user_abort"
    RECOVERABLE_ERROR = "recoverable_error"
    FATAL_ERROR = "fatal_error"


# The device is fine after these; re-running the installer (or one manual step)
# finishes the job.
_RECOVERABLE = {ExitCode.ERROR_USER_INPUT, ExitCode.ERROR_USB_PERMS, ExitCode.ERROR_REMOTE}


def category_for(code: ExitCode) -> OutcomeCategory:
    if code == ExitCode.SUCCESS_USER_ABORT:
        return OutcomeCategory.USER_ABORT
    if code.is_success:
        return OutcomeCategory.SUCCESS
    if code in _RECOVERABLE:
        return OutcomeCategory.RECOVERABLE_ERROR
    return OutcomeCategory.FATAL_ERROR


@dataclass(frozen=True)
class Outcome:
    exit_code: ExitCode
    category: OutcomeCategory
    message: str = ""

    @classmethod
    def of(cls, exit_code: ExitCode, message: str = "") -> "Outcome":
        return cls(exit_code=exit_code, category=category_for(exit_code), message=message)

    @property
    def success(self) -> bool:
        return self.exit_code.is_success


class ExitReporter:
    """Prints the final outcome and turns it into a process exit code."""

    def __init__(
        self,
        out: Optional[TextIO] = None,
        err: Optional[TextIO] = None,
        wait_for_enter: Optional[Callable[[str], str]] = None,
        system: Optional[str] = None,
    ):
        self.out = out or sys.stdout
        self.err = err or sys.stderr
        self.wait_for_enter = wait_for_enter
        self.system = system or platform.system()

    def report(self, outcome: Outcome) -> int:
        if outcome.message:
            stream = self.out if outcome.success else self.err
            print(outcome.message, file=stream, flush=True)

        # A double-clicked console window on Windows closes as soon as the
        # process exits, taking the last messages with it.
        if self.system == "Windows" and self.wait_for_enter is not None:
            try:
                self.wait_for_enter("\nPress [Enter] to exit...")
            except (EOFError, KeyboardInterrupt):
                pass

        return int(outcome.exit_code)


__all__ = [
    "ExitCode",
    "OutcomeCategory",
    "Outcome",
    "ExitReporter",
    "category_for",
]

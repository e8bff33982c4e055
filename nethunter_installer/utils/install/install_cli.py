"""
CLI Wrapper for the Nethunter Install Engine

Usage:
    nethunter-installer
    nethunter-installer --version

The installer is interactive; configuration comes from the environment or a
.env file (see ``nethunter_installer.config``).
"""

import argparse
import logging
import os
import platform
import sys
from pathlib import Path
from typing import List, Optional

from ...config import settings
from ...core.exit_codes import ExitCode, ExitReporter, Outcome
from ...core.logging import setup_logging
from .install_artifacts import ArtifactFetcher, Downloader
from .install_engine import NethunterInstallEngine
from .install_session import InstallSession
from .install_transport import AdbClient, FastbootClient

logger = logging.getLogger(__name__)


def version_string() -> str:
    return (
        f"{settings.APP_NAME} version {settings.APP_VERSION} "
        f"{platform.system().lower()}/{platform.machine().lower()}"
    )


def prepare_environment() -> Optional[Outcome]:
    """
    Put bundled tools on PATH and move into the working directory.

    Returns:
        A terminal Outcome if the installer cannot run, otherwise None
    """
    tools_dir = settings.BUNDLED_TOOLS_DIR
    if tools_dir:
        try:
            os.environ["PATH"] = tools_dir + os.pathsep + os.environ.get("PATH", "")
        except (TypeError, ValueError) as e:
            return Outcome.of(
                ExitCode.ERROR_PREREQS,
                f"Failed to set PATH to include installer tools: {e}",
            )

    # Downloads land in, and are reused from, the working directory
    try:
        os.chdir(os.path.expanduser(settings.WORK_DIR))
    except OSError as e:
        logger.warning(f"Failed to change working directory to {settings.WORK_DIR}: {e}")
        print("Warning: failed to change working directory")
    return None


def run_installer(session: InstallSession) -> Outcome:
    outcome = prepare_environment()
    if outcome is not None:
        return outcome

    engine = NethunterInstallEngine(
        adb=AdbClient(),
        fastboot=FastbootClient(),
        fetcher=ArtifactFetcher(Downloader(), work_dir=Path.cwd()),
        session=session,
    )
    try:
        return engine.execute_install()
    except KeyboardInterrupt:
        session.echo()
        return Outcome.of(ExitCode.ERROR_USER_INPUT, "Installation interrupted.")
    except Exception as e:
        return Outcome.of(ExitCode.ERROR_PREREQS, f"Installer crashed unexpectedly: {e}")


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point"""
    parser = argparse.ArgumentParser(
        prog="nethunter-installer",
        description="Install Kali Nethunter on a OnePlus 5",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="print the program version",
    )
    args = parser.parse_args(argv)

    reporter = ExitReporter(wait_for_enter=input)

    if args.version:
        print(version_string())
        return reporter.report(Outcome.of(ExitCode.SUCCESS))

    setup_logging()
    logger.info(version_string())

    session = InstallSession()
    return reporter.report(run_installer(session))


if __name__ == "__main__":
    sys.exit(main())

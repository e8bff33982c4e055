"""
Nethunter Install Engine - FSM Implementation

This module drives a OnePlus 5 from whatever mode it is plugged in with to a
freshly flashed OxygenOS + Nethunter system.

States (fixed order, single pass):
  AWAIT_USER_CONSENT → VERIFY_TOOLCHAIN → DETECT_DEVICE_MODE
  → [REBOOT_TO_BOOTLOADER] → VERIFY_FASTBOOT_READY → IDENTIFY_DEVICE
  → ENSURE_BOOTLOADER_UNLOCKED → FETCH_ARTIFACTS
  → FLASH_FACTORY_VIA_RECOVERY_A → FLASH_UPDATE_VIA_RECOVERY_B
  → WIPE_CACHE_PARTITIONS → FINAL_REBOOT → DONE

Critical rules:
- Every state that depends on the device mode probes again
- Unlocking the bootloader ends the run; the operator re-runs the installer
- NO polling loops - fixed settle waits only, one per documented latency
- NO automatic retries; every failure ends the run with a specific exit code
"""

from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol
import logging

from ...config import settings
from ...core import messages
from ...core.exit_codes import ExitCode, Outcome, OutcomeCategory
from .install_artifacts import (
    FACTORY,
    RECOVERY_A,
    RECOVERY_B,
    UPDATE,
    ArtifactSpec,
    DownloadError,
    release_catalog,
)
from .install_probe import DeviceMode, DeviceProbe, ProbeError
from .install_session import InstallSession
from .install_transport import TransportError

logger = logging.getLogger(__name__)

# Settle waits (seconds). These model hardware latency and are not settings.
BOOTLOADER_REENUMERATION_WAIT = 7
RECOVERY_BOOT_WAIT = 10
POST_INSTALL_WAIT = 2
WIPE_SPACING_WAIT = 1

WIPE_TARGETS = ("cache", "dalvik", "data")
UPDATE_REMOTE_DIR = "/sdcard"


class InstallState(Enum):
    """FSM States for the install process"""
    INIT = "init"
    AWAIT_USER_CONSENT = "await_user_consent"
    VERIFY_TOOLCHAIN = "verify_toolchain"
    DETECT_DEVICE_MODE = "detect_device_mode"
    REBOOT_TO_BOOTLOADER = "reboot_to_bootloader"
    VERIFY_FASTBOOT_READY = "verify_fastboot_ready"
    IDENTIFY_DEVICE = "identify_device"
    ENSURE_BOOTLOADER_UNLOCKED = "ensure_bootloader_unlocked"
    FETCH_ARTIFACTS = "fetch_artifacts"
    FLASH_FACTORY_VIA_RECOVERY_A = "flash_factory_via_recovery_a"
    FLASH_UPDATE_VIA_RECOVERY_B = "flash_update_via_recovery_b"
    WIPE_CACHE_PARTITIONS = "wipe_cache_partitions"
    FINAL_REBOOT = "final_reboot"
    DONE = "done"
    ERROR = "error"


class AdbProtocol(Protocol):
    def status(self) -> DeviceMode: ...
    def reboot(self, target: str = "") -> None: ...
    def sideload(self, path: str) -> None: ...
    def push_foreground(self, path: str, remote_dir: str) -> None: ...
    def shell(self, command: str) -> str: ...


class FastbootProtocol(Protocol):
    def status(self) -> DeviceMode: ...
    def get_product(self) -> str: ...
    def unlocked(self) -> bool: ...
    def unlock(self) -> None: ...
    def reboot(self) -> None: ...
    def boot(self, image_path: str) -> None: ...


class FetcherProtocol(Protocol):
    def fetch(self, spec: ArtifactSpec,
              on_progress: Optional[Callable[[float], None]] = None) -> Path: ...


class InstallAborted(Exception):
    """Ends the run early with a terminal outcome"""

    def __init__(self, outcome: Outcome):
        super().__init__(outcome.message)
        self.outcome = outcome


def normalize_product(product: str) -> str:
    """Map vendor product strings (e.g. QC_Reference_Phone) to the device codename"""
    return settings.PRODUCT_ALIASES.get(product, product)


class NethunterInstallEngine:
    """
    Nethunter Install Engine - FSM Implementation

    Usage:
        engine = NethunterInstallEngine(adb, fastboot, fetcher, session)
        outcome = engine.execute_install()
        sys.exit(ExitReporter().report(outcome))
    """

    def __init__(
        self,
        adb: AdbProtocol,
        fastboot: FastbootProtocol,
        fetcher: FetcherProtocol,
        session: InstallSession,
        probe: Optional[DeviceProbe] = None,
    ):
        self.adb = adb
        self.fastboot = fastboot
        self.fetcher = fetcher
        self.session = session
        self.probe = probe or DeviceProbe(adb, fastboot)

        self.current_state = InstallState.INIT
        self.history: List[InstallState] = []

        # Cross-phase state; device mode is deliberately not kept here
        self.codename: Optional[str] = None
        self.artifact_paths: Dict[str, Path] = {}

    def _log(self, message: str):
        """Show to the operator, keeping an info-level copy in the log"""
        logger.info(message.strip(), extra={"phase": self.current_state.value})
        self.session.echo(message)

    def _transition(self, new_state: InstallState):
        old_state = self.current_state
        self.current_state = new_state
        self.history.append(new_state)
        logger.info(f"[STATE: {old_state.value} → {new_state.value}]",
                    extra={"phase": new_state.value})

    def _abort(self, code: ExitCode, message: str):
        raise InstallAborted(Outcome.of(code, message))

    def _prompt(self, message: str) -> str:
        try:
            return self.session.prompt(message)
        except (EOFError, KeyboardInterrupt) as e:
            self._abort(ExitCode.ERROR_USER_INPUT, f"Failed to read input: {e!r}")

    def _probe(self, error_code: ExitCode) -> DeviceMode:
        try:
            return self.probe.probe()
        except ProbeError as e:
            self._abort(error_code, f"Failed to get device status: {e}")

    def execute_install(self) -> Outcome:
        """
        Run every state in order.

        Returns:
            The terminal Outcome. Exactly one per run.
        """
        try:
            self._await_user_consent()
            self._verify_toolchain()
            if self._detect_device_mode() != DeviceMode.FASTBOOT_READY:
                self._reboot_to_bootloader()
            self._verify_fastboot_ready()
            self._identify_device()
            self._ensure_bootloader_unlocked()
            self._fetch_artifacts()
            self._flash_factory_via_recovery_a()
            self._flash_update_via_recovery_b()
            self._wipe_cache_partitions()
            outcome = self._final_reboot()
        except InstallAborted as e:
            outcome = e.outcome
            if outcome.success:
                logger.info(f"Install stopped in {self.current_state.value}: {outcome.exit_code.name}")
            else:
                # The reporter prints the message; the log keeps only the code
                logger.info(f"Install failed in {self.current_state.value}: {outcome.exit_code.name}")
                self._transition(InstallState.ERROR)
            return outcome
        except Exception:
            logger.exception(f"Install crashed in {self.current_state.value}")
            self._transition(InstallState.ERROR)
            raise

        if outcome.success:
            self._transition(InstallState.DONE)
        else:
            self._transition(InstallState.ERROR)
        return outcome

    def _await_user_consent(self):
        self._transition(InstallState.AWAIT_USER_CONSENT)
        self.session.echo(messages.MSG_WELCOME)

        response = self._prompt("Are you ready to install Nethunter? (yes/no): ")
        if response != "yes":
            self.session.echo()
            self._abort(ExitCode.SUCCESS_USER_ABORT, messages.MSG_USER_ABORT)

    def _verify_toolchain(self):
        """
        Make sure adb and fastboot run at all.

        A broken or missing binary is an installer problem, not a device
        problem, so it gets its own exit code.
        """
        self._transition(InstallState.VERIFY_TOOLCHAIN)
        self._log("\nVerifying installer tools...")

        for name, client in (("adb", self.adb), ("fastboot", self.fastboot)):
            try:
                client.status()
            except TransportError as e:
                self._abort(
                    ExitCode.ERROR_PREREQS,
                    f"Failed to run {name}: {e}\n{messages.MSG_INCOMPLETE_INSTALLER}",
                )

    def _detect_device_mode(self) -> DeviceMode:
        self._transition(InstallState.DETECT_DEVICE_MODE)
        self._log("Checking USB permissions...")

        mode = self._probe(ExitCode.ERROR_ADB)
        logger.info(f"Detected device mode: {mode.value}")

        if mode in (DeviceMode.NO_DEVICE, DeviceMode.ADB_UNAUTHORIZED):
            self._abort(ExitCode.ERROR_ADB, messages.MSG_ADB_ISSUE)
        if mode == DeviceMode.USB_PERMISSION_DENIED:
            self._abort(ExitCode.ERROR_USB_PERMS, messages.MSG_FIX_PERMS)
        return mode

    def _reboot_to_bootloader(self):
        """
        Reboot from adb (system or recovery) into the bootloader.

        The single settle wait covers USB re-enumeration; if the device is not
        in fastboot afterwards the run ends.
        """
        self._transition(InstallState.REBOOT_TO_BOOTLOADER)
        self._log("Rebooting your device into bootloader...")

        try:
            self.adb.reboot("bootloader")
        except TransportError as e:
            self._abort(ExitCode.ERROR_ADB, f"Failed to reboot into bootloader: {e}")

        self.session.settle(BOOTLOADER_REENUMERATION_WAIT)

        if self._probe(ExitCode.ERROR_ADB) != DeviceMode.FASTBOOT_READY:
            self._abort(ExitCode.ERROR_ADB, "Failed to reboot device into bootloader!")

    def _verify_fastboot_ready(self):
        self._transition(InstallState.VERIFY_FASTBOOT_READY)

        mode = self._probe(ExitCode.ERROR_FASTBOOT)
        if mode == DeviceMode.USB_PERMISSION_DENIED:
            self._abort(ExitCode.ERROR_USB_PERMS, messages.MSG_FIX_PERMS)
        if mode != DeviceMode.FASTBOOT_READY:
            self._abort(ExitCode.ERROR_FASTBOOT, messages.MSG_FASTBOOT_NO_DEVICE_FOUND)

    def _identify_device(self):
        self._transition(InstallState.IDENTIFY_DEVICE)
        self._log("Identifying your device...")

        try:
            product = self.fastboot.get_product()
        except TransportError as e:
            self._abort(ExitCode.ERROR_FASTBOOT, f"Failed to get device product info: {e}")

        self.codename = normalize_product(product)
        if self.codename != product:
            logger.info(f"Product {product!r} is codename {self.codename!r}")
        if self.codename not in settings.supported_codenames_list:
            logger.warning(f"Device {self.codename!r} is not a supported device, continuing anyway")

    def _ensure_bootloader_unlocked(self):
        """
        Unlock the bootloader if needed.

        An unlock wipes user data, so the run ends right after it: the
        operator sets the device up again and re-runs the installer, which
        then takes the already-unlocked path.
        """
        self._transition(InstallState.ENSURE_BOOTLOADER_UNLOCKED)

        try:
            unlocked = self.fastboot.unlocked()
        except TransportError as e:
            # Unknown lock state is treated as unlocked; flashing will fail
            # loudly later if it was not.
            self._log(f"Warning: unable to determine bootloader lock state: {e}")
            unlocked = True

        if unlocked:
            logger.info("Bootloader is already unlocked")
            return

        self._log("Unlocking bootloader, you will need to confirm this on your device...")
        try:
            self.fastboot.unlock()
        except TransportError as e:
            self._abort(ExitCode.ERROR_FASTBOOT, f"Failed to unlock bootloader: {e}")

        try:
            self.fastboot.reboot()
        except TransportError as e:
            self._log(f"Warning: failed to reboot after unlock, please reboot manually: {e}")

        self._abort(ExitCode.SUCCESS_BOOTLOADER_UNLOCKED, messages.MSG_UNLOCK_SUCCESS)

    def _fetch_artifacts(self):
        self._transition(InstallState.FETCH_ARTIFACTS)
        self._log(f"Downloading the latest release for your device ({self.codename!r})...")

        for spec in release_catalog(self.codename):
            self._log(f"Downloading {spec.description or spec.logical_name}...")
            title = spec.description or spec.logical_name
            try:
                path = self.fetcher.fetch(
                    spec,
                    on_progress=lambda fraction, title=title: self.session.render_progress(title, fraction),
                )
            except DownloadError as e:
                # Newline in case the progress bar didn't finish
                self.session.echo()
                self._abort(ExitCode.ERROR_REMOTE,
                            f"Failed to download {spec.description or spec.logical_name}: {e}")
            self.artifact_paths[spec.logical_name] = path

    def _flash_factory_via_recovery_a(self):
        """
        Sideload the factory image from the stock recovery.

        The recovery's "Install from USB" menu entry has no USB equivalent, so
        the operator selects it by hand.
        """
        self._transition(InstallState.FLASH_FACTORY_VIA_RECOVERY_A)
        self._log("Temporarily booting OxygenOS recovery to flash the latest OxygenOS...")

        try:
            self.fastboot.boot(str(self.artifact_paths[RECOVERY_A]))
        except TransportError as e:
            self._abort(ExitCode.ERROR_TWRP, f"Failed to boot into OxygenOS recovery: {e}")

        self._prompt(
            "On your device, choose the Install from USB option in the recovery screen "
            "and tap OK to confirm. Press [Enter] when in sideload mode"
        )

        self._log("Flashing OxygenOS, please keep your device connected...")
        try:
            self.adb.sideload(str(self.artifact_paths[FACTORY]))
        except TransportError as e:
            self._abort(ExitCode.ERROR_TWRP, f"Failed to flash factory zip file: {e}")

    def _flash_update_via_recovery_b(self):
        self._transition(InstallState.FLASH_UPDATE_VIA_RECOVERY_B)

        self._prompt(
            "Reboot back into fastboot when completed. Press [Enter] when in fastboot mode"
        )

        self._log("Temporarily booting TWRP to flash the Nethunter update zip...")
        try:
            self.fastboot.boot(str(self.artifact_paths[RECOVERY_B]))
        except TransportError as e:
            self._abort(ExitCode.ERROR_TWRP, f"Failed to boot TWRP: {e}")

        self.session.settle(RECOVERY_BOOT_WAIT)

        update = self.artifact_paths[UPDATE]
        self._log("Transferring the Nethunter update zip to your device...")
        try:
            self.adb.push_foreground(str(update), UPDATE_REMOTE_DIR)
        except TransportError as e:
            self._abort(ExitCode.ERROR_ADB, f"Failed to push Nethunter update zip to device: {e}")

        self._log("Installing Nethunter, please keep your device connected...")
        try:
            self.adb.shell(f"twrp install {UPDATE_REMOTE_DIR}/{update.name}")
        except TransportError as e:
            self._abort(ExitCode.ERROR_TWRP, f"Failed to flash Nethunter update zip: {e}")

        # TWRP drops the next command if it arrives right after an install
        self.session.settle(POST_INSTALL_WAIT)

    def _wipe_cache_partitions(self):
        """
        Wipe cache, dalvik and data (keeping /data/media), in that order.

        A failed wipe is not rolled back.
        """
        self._transition(InstallState.WIPE_CACHE_PARTITIONS)
        self._log("Wiping your device without wiping /data/media...")

        wiped: List[str] = []
        for target in WIPE_TARGETS:
            try:
                self.adb.shell(f"twrp wipe {target}")
            except TransportError as e:
                done = ", ".join(wiped) if wiped else "nothing"
                self._abort(ExitCode.ERROR_TWRP,
                            f"Failed to wipe {target}: {e}\nAlready wiped: {done}")
            wiped.append(target)
            self.session.settle(WIPE_SPACING_WAIT)

    def _final_reboot(self) -> Outcome:
        self._transition(InstallState.FINAL_REBOOT)
        self.session.echo(messages.MSG_SUCCESS)

        try:
            self.adb.reboot("")
        except TransportError as e:
            # The device is already fully flashed at this point
            return Outcome(
                exit_code=ExitCode.ERROR_ADB,
                category=OutcomeCategory.RECOVERABLE_ERROR,
                message=f"Failed to reboot: {e}\n\n{messages.MSG_MANUAL_REBOOT}",
            )
        return Outcome.of(ExitCode.SUCCESS)


__all__ = [
    "InstallState",
    "InstallAborted",
    "NethunterInstallEngine",
    "normalize_product",
    "BOOTLOADER_REENUMERATION_WAIT",
    "RECOVERY_BOOT_WAIT",
    "POST_INSTALL_WAIT",
    "WIPE_SPACING_WAIT",
]

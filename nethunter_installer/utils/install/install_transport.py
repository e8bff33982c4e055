"""
Transport Implementation for the Installer

This module wraps the adb and fastboot binaries with subprocess. Every
command either succeeds or raises ``TransportError``; a missing or
non-executable binary raises ``ToolNotFoundError`` so callers can tell a
broken installer apart from a missing device.

"No device attached" is not an error here: ``status()`` reports it as
``DeviceMode.NO_DEVICE``.
"""

import re
import subprocess
import logging
from enum import Enum
from typing import Dict, Any, List, Optional

from ...config import settings

logger = logging.getLogger(__name__)


class DeviceMode(Enum):
    """Which mode the attached device is in, as seen over USB"""
    UNKNOWN = "unknown"                             # adb sees it, but not in a usable state
    NO_DEVICE = "no_device"
    ADB_UNAUTHORIZED = "adb_unauthorized"           # USB debugging prompt not accepted
    ADB_READY = "adb_ready"
    FASTBOOT_READY = "fastboot_ready"
    USB_PERMISSION_DENIED = "usb_permission_denied"


class TransportError(Exception):
    """An adb/fastboot command could not be run or reported failure"""


class ToolNotFoundError(TransportError):
    """The adb/fastboot binary itself is missing or not executable"""


# adb states in which ``adb reboot bootloader`` still works
_ADB_REBOOTABLE_STATES = {"device", "recovery", "rescue"}


def _run_command(
    cmd: List[str],
    timeout: Optional[int] = None,
    capture_output: bool = True,
) -> Dict[str, Any]:
    """
    Execute command and return result dict.

    Returns:
        Dict with 'success' (bool), 'stdout' (str), 'stderr' (str), 'returncode' (int)

    Raises:
        ToolNotFoundError: the binary could not be started
        TransportError: the command timed out or failed at the OS level
    """
    logger.debug(f"Executing: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            capture_output=capture_output,
            text=True,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as e:
        raise ToolNotFoundError(f"{cmd[0]} not found") from e
    except PermissionError as e:
        raise ToolNotFoundError(f"{cmd[0]} is not executable") from e
    except subprocess.TimeoutExpired as e:
        logger.warning(f"Command timed out after {timeout}s: {' '.join(cmd)}")
        raise TransportError(f"{' '.join(cmd)} timed out after {timeout} seconds") from e
    except OSError as e:
        raise TransportError(f"failed to run {cmd[0]}: {e}") from e

    if result.stdout:
        logger.debug(f"stdout: {result.stdout.strip()[:200]}")
    if result.stderr:
        logger.debug(f"stderr: {result.stderr.strip()[:200]}")

    return {
        "success": result.returncode == 0,
        "stdout": result.stdout or "",
        "stderr": result.stderr or "",
        "returncode": result.returncode,
    }


def _check(result: Dict[str, Any], what: str) -> Dict[str, Any]:
    """Raise TransportError unless the command succeeded"""
    if not result["success"]:
        detail = (result["stderr"] or result["stdout"]).strip()
        if detail:
            raise TransportError(f"{what} failed (exit {result['returncode']}): {detail}")
        raise TransportError(f"{what} failed (exit {result['returncode']})")
    return result


def _device_lines(output: str) -> List[str]:
    """Device lines of an ``adb devices`` / ``fastboot devices`` listing"""
    lines = []
    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith("List of devices") or line.startswith("*"):
            continue
        lines.append(line)
    return lines


def parse_adb_devices(output: str) -> DeviceMode:
    """Map ``adb devices`` output to a DeviceMode (first device wins)"""
    lines = _device_lines(output)
    if not lines:
        return DeviceMode.NO_DEVICE

    line = lines[0]
    if "no permissions" in line:
        return DeviceMode.USB_PERMISSION_DENIED

    parts = line.split()
    state = parts[1] if len(parts) >= 2 else ""
    if state == "unauthorized":
        return DeviceMode.ADB_UNAUTHORIZED
    if state in _ADB_REBOOTABLE_STATES:
        return DeviceMode.ADB_READY
    return DeviceMode.UNKNOWN


def parse_fastboot_devices(output: str) -> DeviceMode:
    """Map ``fastboot devices`` output to a DeviceMode (first device wins)"""
    lines = _device_lines(output)
    if not lines:
        return DeviceMode.NO_DEVICE
    if "no permissions" in lines[0]:
        return DeviceMode.USB_PERMISSION_DENIED
    return DeviceMode.FASTBOOT_READY


def parse_getvar(output: str, name: str) -> Optional[str]:
    """Value of ``name`` from ``fastboot getvar`` output, or None"""
    # The value must sit on the same line; "product: " alone means empty
    pattern = rf"^(?:\(bootloader\)[ \t]*)?{re.escape(name)}:[ \t]*(\S+)[ \t]*$"
    match = re.search(pattern, output, re.MULTILINE)
    return match.group(1) if match else None


class AdbClient:
    """adb capability: status, reboot, sideload, push and shell"""

    def __init__(self, adb_path: Optional[str] = None, timeout: Optional[int] = None):
        self.adb_path = adb_path or settings.ADB_PATH
        self.timeout = timeout or settings.COMMAND_TIMEOUT_SEC

    def _adb(self, args: List[str], timeout: Optional[int] = None,
             capture_output: bool = True) -> Dict[str, Any]:
        return _run_command([self.adb_path] + args, timeout=timeout or self.timeout,
                            capture_output=capture_output)

    def status(self) -> DeviceMode:
        result = _check(self._adb(["devices"]), "adb devices")
        return parse_adb_devices(result["stdout"])

    def reboot(self, target: str = "") -> None:
        """Reboot into ``target`` ("bootloader", "recovery"), or the system when empty"""
        args = ["reboot", target] if target else ["reboot"]
        _check(self._adb(args), "adb " + " ".join(args))

    def sideload(self, path: str) -> None:
        # adb prints its own transfer progress
        _check(
            self._adb(["sideload", str(path)], timeout=settings.TRANSFER_TIMEOUT_SEC,
                      capture_output=False),
            "adb sideload",
        )

    def push_foreground(self, path: str, remote_dir: str) -> None:
        _check(
            self._adb(["push", str(path), remote_dir], timeout=settings.TRANSFER_TIMEOUT_SEC,
                      capture_output=False),
            "adb push",
        )

    def shell(self, command: str) -> str:
        result = _check(
            self._adb(["shell", command], timeout=settings.TRANSFER_TIMEOUT_SEC),
            f"adb shell {command}",
        )
        return result["stdout"]


class FastbootClient:
    """fastboot capability: status, product, lock state, unlock, reboot and boot"""

    def __init__(self, fastboot_path: Optional[str] = None, timeout: Optional[int] = None):
        self.fastboot_path = fastboot_path or settings.FASTBOOT_PATH
        self.timeout = timeout or settings.COMMAND_TIMEOUT_SEC

    def _fastboot(self, args: List[str], timeout: Optional[int] = None) -> Dict[str, Any]:
        return _run_command([self.fastboot_path] + args, timeout=timeout or self.timeout)

    def status(self) -> DeviceMode:
        result = _check(self._fastboot(["devices"]), "fastboot devices")
        # Some fastboot builds list devices on stderr
        return parse_fastboot_devices(result["stdout"] + "\n" + result["stderr"])

    def _getvar(self, name: str) -> Optional[str]:
        result = _check(self._fastboot(["getvar", name]), f"fastboot getvar {name}")
        # fastboot writes getvar output to stderr
        return parse_getvar(result["stderr"] + "\n" + result["stdout"], name)

    def get_product(self) -> str:
        product = self._getvar("product")
        if not product:
            raise TransportError("fastboot did not report a product")
        return product

    def unlocked(self) -> bool:
        value = self._getvar("unlocked")
        if value in ("yes", "true"):
            return True
        if value in ("no", "false"):
            return False

        # Older OnePlus bootloaders only answer through device-info
        result = _check(self._fastboot(["oem", "device-info"]), "fastboot oem device-info")
        output = result["stderr"] + "\n" + result["stdout"]
        match = re.search(r"Device unlocked:\s*(true|false)", output)
        if not match:
            raise TransportError("unable to read bootloader lock state")
        return match.group(1) == "true"

    def unlock(self) -> None:
        """Request an unlock; blocks until the user confirms on the device"""
        _check(self._fastboot(["oem", "unlock"], timeout=settings.UNLOCK_TIMEOUT_SEC),
               "fastboot oem unlock")

    def reboot(self) -> None:
        _check(self._fastboot(["reboot"]), "fastboot reboot")

    def boot(self, image_path: str) -> None:
        """Temporarily boot an image without flashing it"""
        _check(self._fastboot(["boot", str(image_path)], timeout=settings.TRANSFER_TIMEOUT_SEC),
               "fastboot boot")


__all__ = [
    "DeviceMode",
    "TransportError",
    "ToolNotFoundError",
    "AdbClient",
    "FastbootClient",
    "parse_adb_devices",
    "parse_fastboot_devices",
    "parse_getvar",
]

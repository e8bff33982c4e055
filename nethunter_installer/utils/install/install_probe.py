"""Device mode detection over fastboot and adb"""

import logging
from typing import Protocol

from .install_transport import DeviceMode, TransportError

logger = logging.getLogger(__name__)


class ModeReporter(Protocol):
    def status(self) -> DeviceMode:
        ...


class ProbeError(Exception):
    """The transport failed while probing (as opposed to "no device")"""


class DeviceProbe:
    """
    Reports the current DeviceMode.

    Every call asks the device again; USB state changes whenever the user
    re-plugs the cable or the device reboots, so results are never cached.
    fastboot is asked first: a device sitting in the bootloader is invisible
    to adb.
    """

    def __init__(self, adb: ModeReporter, fastboot: ModeReporter):
        self.adb = adb
        self.fastboot = fastboot

    def probe(self) -> DeviceMode:
        try:
            mode = self.fastboot.status()
            if mode in (DeviceMode.FASTBOOT_READY, DeviceMode.USB_PERMISSION_DENIED):
                logger.debug(f"Probe (fastboot): {mode.value}")
                return mode

            mode = self.adb.status()
        except TransportError as e:
            raise ProbeError(str(e)) from e

        logger.debug(f"Probe (adb): {mode.value}")
        return mode


__all__ = ["DeviceProbe", "ProbeError", "DeviceMode"]

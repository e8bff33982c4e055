"""Operator-facing messages"""

MSG_WELCOME = """
Welcome to the Nethunter installer for the OnePlus 5!

This installer will:
  1. Unlock your bootloader (this wipes your data, and ends this run)
  2. Download Nethunter, OxygenOS and recovery images
  3. Reflash OxygenOS and install Nethunter on top of it

Please connect your device with a USB cable and enable USB debugging
(Settings > Developer options > USB debugging) before continuing.
"""

MSG_INCOMPLETE_INSTALLER = (
    "It looks like your installer is incomplete. Please make sure adb and "
    "fastboot are installed or bundled next to the installer."
)

MSG_ADB_ISSUE = """
Your device could not be reached over adb. Please check that:

  1. Your device is connected with a working USB cable
  2. USB debugging is enabled (Settings > Developer options > USB debugging)
  3. You accepted the "Allow USB debugging?" prompt on your device

Then run the installer again.
"""

MSG_FIX_PERMS = """
Your user does not have permission to access the device over USB.

On Linux, add a udev rule for your device and re-plug the cable, or run the
installer as root. See https://developer.android.com/studio/run/device for
details.
"""

MSG_FASTBOOT_NO_DEVICE_FOUND = """
Your device was not detected in fastboot mode. Please re-plug the USB cable
and run the installer again.
"""

MSG_UNLOCK_SUCCESS = """
Your bootloader is now unlocked and your device is rebooting.

Your device has been reset to factory settings. Please go through the setup
wizard, enable USB debugging again and re-run this installer to continue.
"""

MSG_SUCCESS = """
Nethunter was installed successfully! Your device will now reboot. The first
boot can take a few minutes.
"""

MSG_MANUAL_REBOOT = (
    "Please reboot your device manually by going to Reboot > System > Do Not Install"
)

MSG_USER_ABORT = "Aborting installation."

"""Installer Configuration"""

import os
import sys
from typing import Dict, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from . import __version__


def _installer_dir() -> str:
    """Directory holding the installer (and any bundled adb/fastboot binaries)"""
    if getattr(sys, "frozen", False):
        return os.path.dirname(sys.executable)
    return os.path.dirname(os.path.abspath(sys.argv[0] or "."))


class Settings(BaseSettings):
    """Installer settings, overridable from the environment or a .env file"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Nethunter installer"
    APP_VERSION: str = __version__
    DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "WARNING"
    LOG_FORMAT: str = "text"  # json or text

    # Tools
    ADB_PATH: str = "adb"
    FASTBOOT_PATH: str = "fastboot"
    BUNDLED_TOOLS_DIR: str = Field(
        default_factory=_installer_dir,
        description="Directory prepended to PATH so bundled adb/fastboot are found first",
    )
    COMMAND_TIMEOUT_SEC: int = 30
    TRANSFER_TIMEOUT_SEC: int = Field(
        default=1800,
        description="Timeout for sideload, push and recovery install commands",
    )
    UNLOCK_TIMEOUT_SEC: int = Field(
        default=300,
        description="How long to wait for the on-device unlock confirmation",
    )

    # Working directory (downloaded artifacts are cached here)
    WORK_DIR: str = Field(
        default=".",
        description="Directory artifacts are downloaded into and reused from",
    )

    # Releases
    NETHUNTER_URL: str = (
        "https://build.nethunter.com/nightly/latest/"
        "nethunter-oneplus5-oos-nougat-kalifs-full.zip"
    )
    OXYGEN_RECOVERY_URL: str = (
        "https://oxygenos.oneplus.net/OnePlus5Oxygen_23_recovery.img"
    )
    FACTORY_URL: str = (
        "https://oxygenos.oneplus.net/OnePlus5Oxygen_23_OTA_036_all_1710231802_fullsigned.zip"
    )
    TWRP_ENDPOINT: str = "https://dl.twrp.me"
    TWRP_VERSION_PREFIX: str = "twrp-3.1.1-1-"
    TWRP_EXTENSION: str = ".img"
    DOWNLOAD_TIMEOUT_SEC: int = 60
    USER_AGENT: str = f"Nethunter-Installer/{__version__}"

    # Devices
    SUPPORTED_CODENAMES: str = Field(
        default="cheeseburger",
        description="Comma-separated list of supported device codenames",
    )
    PRODUCT_ALIASES: Dict[str, str] = Field(
        default={"QC_Reference_Phone": "cheeseburger"},
        description="fastboot product strings reported by vendors instead of the codename",
    )

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Only json and text formatters exist"""
        v = v.lower()
        if v not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be 'json' or 'text'")
        return v

    @property
    def supported_codenames_list(self) -> List[str]:
        """Parse supported codenames from comma-separated string"""
        return [c.strip() for c in self.SUPPORTED_CODENAMES.split(",") if c.strip()]


settings = Settings()

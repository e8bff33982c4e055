"""Global pytest fixtures and configuration."""

import io
from pathlib import Path
from typing import Callable, List, Optional
from unittest.mock import MagicMock

import pytest

from nethunter_installer.utils.install.install_artifacts import ArtifactSpec
from nethunter_installer.utils.install.install_session import InstallSession
from nethunter_installer.utils.install.install_transport import AdbClient, DeviceMode, FastbootClient


class ScriptedSession(InstallSession):
    """Session that answers prompts from a list and never sleeps."""

    def __init__(self, answers: Optional[List[str]] = None):
        self.answers = list(answers or [])
        self.prompts: List[str] = []
        self.settles: List[float] = []
        self.progress: List[float] = []
        super().__init__(input_fn=self._answer, out=io.StringIO(), sleep=self.settles.append)

    def _answer(self, message: str) -> str:
        self.prompts.append(message)
        if not self.answers:
            raise EOFError("no more scripted input")
        return self.answers.pop(0)

    def render_progress(self, title: str, fraction: float) -> None:
        self.progress.append(fraction)
        super().render_progress(title, fraction)

    @property
    def output(self) -> str:
        return self.out.getvalue()


class FakeFetcher:
    """Records fetch calls and returns a path per artifact."""

    def __init__(self, tmp_path: Path, fail_on: Optional[str] = None,
                 error: Optional[Callable[[], Exception]] = None):
        self.tmp_path = tmp_path
        self.fail_on = fail_on
        self.error = error
        self.requested: List[ArtifactSpec] = []

    def fetch(self, spec, on_progress=None):
        self.requested.append(spec)
        if spec.logical_name == self.fail_on:
            raise self.error()
        if on_progress:
            on_progress(1.0)
        return self.tmp_path / f"{spec.logical_name}.bin"


@pytest.fixture
def session():
    """Session that consents and confirms both manual recovery steps."""
    return ScriptedSession(["yes", "", ""])


@pytest.fixture
def mock_adb():
    adb = MagicMock(spec=AdbClient)
    adb.status.return_value = DeviceMode.ADB_READY
    return adb


@pytest.fixture
def mock_fastboot():
    fastboot = MagicMock(spec=FastbootClient)
    fastboot.status.return_value = DeviceMode.FASTBOOT_READY
    fastboot.get_product.return_value = "cheeseburger"
    fastboot.unlocked.return_value = True
    return fastboot


@pytest.fixture
def fetcher(tmp_path):
    return FakeFetcher(tmp_path)


@pytest.fixture
def mock_probe():
    """Probe whose results are scripted per test via side_effect."""
    probe = MagicMock()
    probe.probe.return_value = DeviceMode.FASTBOOT_READY
    return probe

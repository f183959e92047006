"""
Pytest configuration and fixtures for StorageForge tests.
"""

import sys
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any, Generator

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from storageforge.core.plan import InstallPlan  # noqa: E402
from storageforge.platform.base import Command, CommandResult  # noqa: E402
from storageforge.platform.dryrun import DryRunCommandRunner  # noqa: E402


class RecordingRunner(DryRunCommandRunner):
    """
    Dry-run runner that can pretend to be live and inject failures.

    fail_on receives each command and returns True for the ones that should
    exit non-zero. Paths in missing_devices fail block-device validation.
    """

    def __init__(
        self,
        dry_run: bool = False,
        fail_on: Callable[[Command], bool] | None = None,
        missing_devices: set[str] | None = None,
        missing_tools: set[str] | None = None,
        admin: bool = True,
    ) -> None:
        super().__init__()
        self._dry_run = dry_run
        self.fail_on = fail_on
        self.missing_devices = missing_devices or set()
        self.missing_tools = missing_tools or set()
        self.admin = admin

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    def execute(self, command: Command) -> CommandResult:
        if self.fail_on is not None and self.fail_on(command):
            return CommandResult(
                returncode=1, stdout="", stderr=f"{command.tool}: simulated failure", command=command
            )
        return super().execute(command)

    def device_exists(self, path: str) -> bool:
        return path not in self.missing_devices

    def has_tool(self, tool: str) -> bool:
        return tool not in self.missing_tools

    def is_admin(self) -> bool:
        return self.admin

    def argvs(self) -> list[list[str]]:
        return [r.command.argv for r in self.history]

    def tools(self) -> list[str]:
        return [r.command.tool for r in self.history]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def make_plan(temp_dir: Path) -> Callable[..., InstallPlan]:
    """Build plans whose target root lives in a temp directory."""

    def _make(**overrides: Any) -> InstallPlan:
        data: dict[str, Any] = {
            "disks": ["/dev/sda"],
            "boot_mode": "firmware",
            "strategy": {"kind": "simple"},
            "target_root": str(temp_dir / "target"),
        }
        data.update(overrides)
        return InstallPlan.model_validate(data)

    return _make


@pytest.fixture
def simple_plan(make_plan: Callable[..., InstallPlan]) -> InstallPlan:
    """Scenario A: one disk, firmware boot, ext4 root, no swap, no home."""
    return make_plan()


@pytest.fixture
def raid_plan(make_plan: Callable[..., InstallPlan]) -> InstallPlan:
    """Two disks, firmware boot, RAID1 + LVM with swap and home."""
    return make_plan(
        disks=["/dev/sda", "/dev/sdb"],
        strategy={"kind": "raid_lvm"},
        swap={"enabled": True, "size_mib": 4096},
        home={"enabled": True},
        home_filesystem="ext4",
    )


@pytest.fixture
def luks_plan(make_plan: Callable[..., InstallPlan]) -> InstallPlan:
    """One NVMe disk, legacy boot, LUKS root and home."""
    return make_plan(
        disks=["/dev/nvme0n1"],
        boot_mode="legacy",
        strategy={"kind": "simple_luks", "passphrase": "correct horse battery staple"},
        home={"enabled": True},
        home_filesystem="xfs",
    )


@pytest.fixture
def sample_config(temp_dir: Path) -> "StorageForgeConfig":
    """Create a sample configuration for testing."""
    from storageforge.core.config import StorageForgeConfig

    config = StorageForgeConfig(session_directory=temp_dir / "sessions")
    config.logging.log_directory = temp_dir / "logs"
    config.logging.file_enabled = False
    config.ensure_directories()
    return config


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")


@pytest.fixture
def make_runner() -> type[RecordingRunner]:
    """The recording runner class, for tests that need failures or missing devices."""
    return RecordingRunner

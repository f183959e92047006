"""
StorageForge persisted state.

Files written into the mounted target so the new system can reassemble and
unlock what was built: the RAID array list and crypttab.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from storageforge.core.exceptions import StorageForgeError
from storageforge.core.logging import get_logger
from storageforge.core.models import DeviceKind, VolumePurpose
from storageforge.platform.base import Command
from storageforge.platform.linux.parsers import parse_mdadm_scan
from storageforge.platform.linux.tools import LinuxTools

if TYPE_CHECKING:
    from storageforge.core.models import DeviceStack
    from storageforge.platform.base import CommandRunner

logger = get_logger(__name__)


def _write(path: Path, content: str, runner: CommandRunner) -> None:
    if runner.dry_run:
        logger.info("Would write file", path=str(path), lines=content.count("\n"))
        return
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    except OSError as e:
        raise StorageForgeError(f"Cannot write {path}: {e}", step="persist") from e
    logger.info("Wrote file", path=str(path))


def write_raid_config(
    stack: DeviceStack,
    target_root: str,
    relative_path: str,
    runner: CommandRunner,
) -> Path:
    """Record every assembled array in the target's mdadm.conf."""
    step = "raid config"
    path = Path(target_root) / relative_path

    result = runner.check(
        Command(LinuxTools.MDADM, ("--detail", "--scan"), description="List assembled arrays"),
        step,
    )
    scanned = parse_mdadm_scan(result.stdout)
    expected = [n.path for n in stack.of_kind(DeviceKind.RAID_ARRAY)]
    missing = [array for array in expected if array not in scanned]
    if missing:
        raise StorageForgeError(
            f"mdadm scan did not report {', '.join(missing)}", step=step, device=missing[0]
        )

    _write(path, result.stdout if result.stdout.endswith("\n") else result.stdout + "\n", runner)
    return path


def render_crypttab(stack: DeviceStack) -> str:
    """
    crypttab lines for containers the initramfs does not unlock.

    Root is unlocked from the kernel command line, so only the other
    containers (home) are listed.
    """
    lines = []
    for node in stack.of_kind(DeviceKind.ENCRYPTED_CONTAINER):
        if node.purpose is VolumePurpose.ROOT:
            continue
        lines.append(f"{node.name} UUID={node.container_uuid} none luks\n")
    return "".join(lines)


def write_crypttab(
    stack: DeviceStack,
    target_root: str,
    relative_path: str,
    runner: CommandRunner,
) -> Path | None:
    content = render_crypttab(stack)
    if not content:
        return None
    path = Path(target_root) / relative_path
    _write(path, content, runner)
    return path

"""
StorageForge Session Management.

A session wires configuration, logging and a command runner together, runs
provisioning operations and keeps an audit report of every command issued.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from storageforge.core.config import StorageForgeConfig, load_config
from storageforge.core.logging import get_logger, setup_logging
from storageforge.core.safety import SafetyManager
from storageforge.platform import get_command_runner

if TYPE_CHECKING:
    from storageforge.core.plan import InstallPlan
    from storageforge.core.result import ProvisionResult
    from storageforge.platform.base import CommandRunner
    from storageforge.provision.teardown import TeardownReport

logger = get_logger(__name__)


@dataclass
class SessionReport:
    """Complete session report for audit and review."""

    session_id: str
    started_at: datetime
    dry_run: bool = False
    ended_at: datetime | None = None
    operations: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    config_snapshot: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_seconds": (
                (self.ended_at - self.started_at).total_seconds() if self.ended_at else None
            ),
            "dry_run": self.dry_run,
            "operations": self.operations,
            "errors": self.errors,
            "warnings": self.warnings,
            "config_snapshot": self.config_snapshot,
            "summary": {
                "total_operations": len(self.operations),
                "successful_operations": sum(
                    1 for op in self.operations if op.get("success", False)
                ),
                "failed_operations": sum(
                    1 for op in self.operations if not op.get("success", True)
                ),
                "total_errors": len(self.errors),
                "total_warnings": len(self.warnings),
            },
        }

    def save(self, path: Path) -> None:
        """Save report to file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)


class ProvisionSession:
    """
    Entry point for provisioning runs.

    Holds the configuration, the command runner (real or dry-run) and the
    report that is saved when the session closes.
    """

    def __init__(
        self,
        config: StorageForgeConfig | None = None,
        session_id: str | None = None,
        dry_run: bool | None = None,
        runner: CommandRunner | None = None,
    ) -> None:
        self.id = session_id or str(uuid.uuid4())
        self.config = config or load_config()
        self.started_at = datetime.now()

        setup_logging(self.config.logging)

        if dry_run is None:
            dry_run = self.config.execution.dry_run_default
        self.runner = runner or get_command_runner(dry_run=dry_run)
        self.safety = SafetyManager(self.config.execution)

        self._report = SessionReport(
            session_id=self.id,
            started_at=self.started_at,
            dry_run=self.runner.dry_run,
            config_snapshot=self.config.model_dump(mode="json"),
        )

        logger.info("Session started", session_id=self.id, dry_run=self.runner.dry_run)

    @property
    def dry_run(self) -> bool:
        return self.runner.dry_run

    def provision(self, plan: InstallPlan) -> ProvisionResult:
        """Run a plan's strategy and track it in the session."""
        from storageforge.provision.strategy import execute_strategy

        result = execute_strategy(plan, self.runner, self.config.execution)

        record: dict[str, Any] = {
            "timestamp": datetime.now().isoformat(),
            "operation": "provision",
            "plan": plan.describe(),
            **result.to_dict(),
        }
        self._report.operations.append(record)
        self._report.warnings.extend(result.warnings)
        if not result.success:
            self._report.errors.append(
                {
                    "timestamp": datetime.now().isoformat(),
                    "kind": result.error_kind,
                    "step": result.failed_step,
                    "device": result.failed_device,
                    "error": result.error,
                }
            )
        return result

    def teardown(self, plan: InstallPlan) -> TeardownReport:
        """Release live devices left by a run of this plan."""
        from storageforge.provision.teardown import teardown

        report = teardown(plan, self.runner)
        self._report.operations.append(
            {
                "timestamp": datetime.now().isoformat(),
                "operation": "teardown",
                "success": report.clean,
                "released": report.released,
                "failed": [r.to_dict() for r in report.failed],
            }
        )
        return report

    def close(self) -> Path:
        """Close the session and save the report."""
        self._report.ended_at = datetime.now()

        report_path = self.config.get_session_file()
        self._report.save(report_path)

        logger.info(
            "Session closed",
            session_id=self.id,
            duration_seconds=(self._report.ended_at - self.started_at).total_seconds(),
            report_path=str(report_path),
        )
        return report_path

    def get_report(self) -> SessionReport:
        return self._report

    def __enter__(self) -> ProvisionSession:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

"""
Tests for storageforge.core.session module.
"""

import json

from storageforge.core.plan import InstallPlan
from storageforge.core.session import ProvisionSession
from storageforge.platform.dryrun import DryRunCommandRunner


class TestProvisionSession:
    """Tests for ProvisionSession."""

    def test_dry_run_uses_recording_runner(self, sample_config) -> None:
        session = ProvisionSession(config=sample_config, dry_run=True)
        assert isinstance(session.runner, DryRunCommandRunner)
        assert session.dry_run is True

    def test_provision_is_reported(
        self, sample_config, runner, simple_plan: InstallPlan, mocker
    ) -> None:
        mocker.patch("psutil.sensors_battery", return_value=None)

        with ProvisionSession(config=sample_config, runner=runner) as session:
            result = session.provision(simple_plan)
            report = session.get_report()

        assert result.success, result.error
        data = report.to_dict()
        assert data["summary"]["total_operations"] == 1
        assert data["summary"]["successful_operations"] == 1
        assert data["operations"][0]["operation"] == "provision"
        assert len(data["operations"][0]["records"]) == 2

        saved = list(sample_config.session_directory.glob("session_*.json"))
        assert len(saved) == 1
        assert json.loads(saved[0].read_text())["session_id"] == session.id

    def test_failure_is_reported(
        self, sample_config, runner, make_plan, mocker
    ) -> None:
        mocker.patch("psutil.sensors_battery", return_value=None)
        plan = make_plan(disks=["sda", "sdb"], strategy="raid_luks")

        session = ProvisionSession(config=sample_config, runner=runner)
        session.provision(plan)
        report = session.get_report().to_dict()

        assert report["summary"]["failed_operations"] == 1
        assert report["errors"][0]["kind"] == "not_implemented"

    def test_passphrase_not_in_report(
        self, sample_config, runner, luks_plan: InstallPlan, mocker
    ) -> None:
        mocker.patch("psutil.sensors_battery", return_value=None)

        with ProvisionSession(config=sample_config, runner=runner) as session:
            session.provision(luks_plan)
        path = next(sample_config.session_directory.glob("session_*.json"))

        assert "correct horse" not in path.read_text()

    def test_teardown_is_reported(self, sample_config, runner, raid_plan: InstallPlan) -> None:
        session = ProvisionSession(config=sample_config, runner=runner)
        report = session.teardown(raid_plan)

        assert report.clean
        assert session.get_report().operations[0]["operation"] == "teardown"

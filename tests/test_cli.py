"""
Tests for CLI commands: global options, config check, tag, deploy, k8s, image, scan.
"""

import json
from contextlib import contextmanager
from pathlib import Path
from unittest.mock import patch

from click.testing import CliRunner

from conftest import status

from kubeship.core.errors import RolloutTimeoutError, ToolError
from kubeship.core.models.deployment import DiagnosticBundle
from kubeship.core.services.rollout import RolloutResult
from kubeship.core.services.scanners import ScanResult
from kubeship.core.use_cases.deploy import DeployReport
from kubeship.core.models.receipt import Receipt
from kubeship.main import cli


class TestCLIGlobal:
    def test_help(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "roll out your app on Kubernetes" in result.output
        for group in ("deploy", "k8s", "image", "scan", "config"):
            assert group in result.output

    def test_version(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_missing_config(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        runner = CliRunner()
        result = runner.invoke(cli, ["tag"])
        assert result.exit_code == 1
        assert "No kubeship.yml" in result.output


class TestConfigCheck:
    def test_valid(self, project: Path):
        runner = CliRunner()
        result = runner.invoke(cli, ["--config", str(project / "kubeship.yml"), "config", "check"])
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output
        assert "web-cluster" in result.output

    def test_invalid_json(self, tmp_path: Path):
        path = tmp_path / "kubeship.yml"
        path.write_text("name: web\n")
        runner = CliRunner()
        result = runner.invoke(cli, ["--config", str(path), "config", "check", "--json"])
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["valid"] is False
        assert data["errors"]


class TestTag:
    def test_tag_from_env(self, project: Path):
        runner = CliRunner(env={"GITHUB_SHA": "0123456789abcdef"})
        result = runner.invoke(cli, ["--config", str(project / "kubeship.yml"), "tag", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["tag"] == "0123456"
        assert data["image"].endswith("/web:0123456")


class TestDeploy:
    @patch("kubeship.core.use_cases.deploy.run_deploy")
    def test_failed_run_exits_1(self, mock_deploy, project: Path):
        mock_deploy.return_value = DeployReport(
            receipts=[
                Receipt.success("tag", output="r/web:abc1234"),
                Receipt.failure("rollout", "timed out after 300s"),
            ],
            image="r/web:abc1234",
            bundle_path=project / "bundle.txt",
            error="rollout: timed out after 300s",
        )
        runner = CliRunner()
        result = runner.invoke(cli, ["--config", str(project / "kubeship.yml"), "deploy"])

        assert result.exit_code == 1
        assert "✗ rollout" in result.output
        assert "bundle.txt" in result.output

    @patch("kubeship.core.use_cases.deploy.run_deploy")
    def test_options_passed(self, mock_deploy, project: Path):
        mock_deploy.return_value = DeployReport(receipts=[Receipt.success("tag")])
        runner = CliRunner()
        result = runner.invoke(cli, [
            "--config", str(project / "kubeship.yml"),
            "deploy", "--skip-build", "--tag", "v1", "--scan-mode", "enforce",
            "--timeout", "60", "--json",
        ])

        assert result.exit_code == 0
        options = mock_deploy.call_args.args[2]
        assert options.skip_build is True
        assert options.tag == "v1"
        assert options.scan_mode == "enforce"
        assert options.rollout_timeout == 60
        assert json.loads(result.output)["status"] == "ok"


class TestK8sRollout:
    @patch("kubeship.core.services.rollout.RolloutReconciler.reconcile")
    def test_success(self, mock_reconcile, project: Path):
        from kubeship.core.models.deployment import DeploymentTarget

        mock_reconcile.return_value = RolloutResult(
            target=DeploymentTarget(name="web", container="web"),
            status=status(2, 2, 2),
            elapsed=35.0,
        )
        runner = CliRunner()
        result = runner.invoke(cli, [
            "--config", str(project / "kubeship.yml"),
            "k8s", "rollout", "r.example.com/web:abc1234",
        ])
        assert result.exit_code == 0
        assert "2/2 updated" in result.output

    @patch("kubeship.core.services.rollout.RolloutReconciler.reconcile")
    def test_timeout_exits_1(self, mock_reconcile, project: Path):
        mock_reconcile.side_effect = RolloutTimeoutError(
            "Rollout of deployment/web timed out after 300s",
            bundle=DiagnosticBundle(deployment="web", namespace="default"),
            bundle_path=project / "web-bundle.txt",
        )
        runner = CliRunner()
        result = runner.invoke(cli, [
            "--config", str(project / "kubeship.yml"),
            "k8s", "rollout", "r.example.com/web:abc1234", "--json",
        ])
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["ok"] is False
        assert data["bundle_path"].endswith("web-bundle.txt")


class TestScan:
    @patch("kubeship.core.services.scanners.scan_image")
    def test_enforce_findings_exit_1(self, mock_scan, project: Path):
        mock_scan.return_value = ScanResult(name="trivy", returncode=1, output="CVE-2024-0001")
        runner = CliRunner()
        result = runner.invoke(cli, [
            "--config", str(project / "kubeship.yml"),
            "scan", "image", "r.example.com/web:abc1234", "--scan-mode", "enforce",
        ])
        assert result.exit_code == 1
        assert "CVE-2024-0001" in result.output

    @patch("kubeship.core.services.scanners.scan_image")
    def test_informational_findings_exit_0(self, mock_scan, project: Path):
        mock_scan.return_value = ScanResult(name="trivy", returncode=1, output="CVE-2024-0001")
        runner = CliRunner()
        result = runner.invoke(cli, [
            "--config", str(project / "kubeship.yml"),
            "scan", "image", "r.example.com/web:abc1234",
        ])
        assert result.exit_code == 0
        assert "informational" in result.output


_KUBECTL = "kubeship.core.services.k8s_cluster.KubectlClient"


class TestK8sExpose:
    def test_classic_hostname(self, project: Path, cluster):
        cluster.hostnames["web-clb"] = lambda t: "clb.example.com"
        runner = CliRunner()
        with patch(_KUBECTL, return_value=cluster):
            result = runner.invoke(cli, ["--config", str(project / "kubeship.yml"), "k8s", "expose"])
        assert result.exit_code == 0
        assert "clb.example.com" in result.output
        assert "classic: exposed" in result.output
        assert ("apply", "service-nlb.yaml") not in cluster.calls

    def test_no_manifests_json(self, project: Path, cluster):
        (project / "k8s" / "service-clb.yaml").unlink()
        (project / "k8s" / "service-nlb.yaml").unlink()
        runner = CliRunner()
        with patch(_KUBECTL, return_value=cluster):
            result = runner.invoke(cli, [
                "--config", str(project / "kubeship.yml"), "k8s", "expose", "--json",
            ])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["hostname"] is None
        assert [a["status"] for a in data["attempts"]] == ["skipped", "skipped"]
        assert cluster.calls == []


class TestK8sDiagnose:
    def test_write_bundle(self, project: Path, cluster):
        cluster.pods = ["web-1"]
        runner = CliRunner()
        with patch(_KUBECTL, return_value=cluster):
            result = runner.invoke(cli, [
                "--config", str(project / "kubeship.yml"), "k8s", "diagnose", "--write",
            ])
        assert result.exit_code == 0
        assert "Written:" in result.output
        written = list((project / ".kubeship" / "diagnostics").glob("web-*.txt"))
        assert len(written) == 1
        assert "## Pod web-1" in written[0].read_text()

    def test_print_bundle(self, project: Path, cluster):
        runner = CliRunner()
        with patch(_KUBECTL, return_value=cluster):
            result = runner.invoke(cli, ["--config", str(project / "kubeship.yml"), "k8s", "diagnose"])
        assert result.exit_code == 0
        assert "# Rollout diagnostics: default/web" in result.output
        assert not (project / ".kubeship").exists()


class TestImagePush:
    def _session(self, events):
        @contextmanager
        def session(registry, region, policy=None, *, sleep=None):
            events.append(f"login {registry}")
            try:
                yield registry
            finally:
                events.append("logout")
        return session

    def test_push_inside_session(self, project: Path):
        events: list[str] = []

        def push(image, *, also_latest=False):
            events.append(f"push {image.reference}")
            return [image.reference]

        runner = CliRunner()
        with patch("kubeship.core.services.registry.registry_session", self._session(events)), \
             patch("kubeship.core.services.registry.push_image", push):
            result = runner.invoke(cli, [
                "--config", str(project / "kubeship.yml"), "image", "push", "--tag", "abc1234",
            ])
        assert result.exit_code == 0
        assert "Pushed 123456789012.dkr.ecr.us-east-1.amazonaws.com/web:abc1234" in result.output
        assert events == [
            "login 123456789012.dkr.ecr.us-east-1.amazonaws.com",
            "push 123456789012.dkr.ecr.us-east-1.amazonaws.com/web:abc1234",
            "logout",
        ]

    def test_push_failure_exits_1_and_logs_out(self, project: Path):
        events: list[str] = []
        runner = CliRunner()
        with patch("kubeship.core.services.registry.registry_session", self._session(events)), \
             patch("kubeship.core.services.registry.push_image",
                   side_effect=ToolError("docker", "push failed")):
            result = runner.invoke(cli, [
                "--config", str(project / "kubeship.yml"), "image", "push", "--tag", "abc1234",
            ])
        assert result.exit_code == 1
        assert "docker: push failed" in result.output
        assert events[-1] == "logout"


class TestImageArgument:
    def test_digest_reference_is_usage_error(self, project: Path):
        runner = CliRunner()
        with patch("kubeship.core.services.rollout.RolloutReconciler.reconcile") as mock_reconcile:
            result = runner.invoke(cli, [
                "--config", str(project / "kubeship.yml"),
                "k8s", "rollout", "r.example.com/web@sha256:9f86d081",
            ])
        assert result.exit_code == 2
        assert "Digest references are not supported" in result.output
        mock_reconcile.assert_not_called()

"""
Tests for k8s_common: low-level kubectl and manifest helpers.
"""

from __future__ import annotations

import json
import subprocess
import textwrap
from pathlib import Path
from unittest.mock import MagicMock, patch

from kubeship.core.services.k8s_common import (
    _kubectl_available,
    _parse_k8s_yaml,
    _run_kubectl,
    _selector_string,
    first_resource_name,
    service_name_from_manifest,
)


class TestRunKubectl:
    @patch("kubeship.core.services.k8s_common.subprocess.run")
    def test_prepends_kubectl(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")
        _run_kubectl("get", "pods", timeout=7)

        args, kwargs = mock_run.call_args
        assert args[0] == ["kubectl", "get", "pods"]
        assert kwargs["timeout"] == 7
        assert kwargs["capture_output"] is True


class TestKubectlAvailable:
    @patch("kubeship.core.services.k8s_common._run_kubectl")
    def test_available(self, mock_run):
        mock_run.return_value = MagicMock(
            returncode=0,
            stdout=json.dumps({"clientVersion": {"gitVersion": "v1.30.2"}}),
        )
        assert _kubectl_available() == {"available": True, "version": "v1.30.2"}

    @patch("kubeship.core.services.k8s_common._run_kubectl", side_effect=FileNotFoundError)
    def test_missing(self, _run):
        assert _kubectl_available() == {"available": False, "version": None}

    @patch(
        "kubeship.core.services.k8s_common._run_kubectl",
        side_effect=subprocess.TimeoutExpired("kubectl", 15),
    )
    def test_timeout(self, _run):
        assert _kubectl_available()["available"] is False


class TestParseK8sYaml:
    def test_multi_document(self, tmp_path: Path):
        f = tmp_path / "all.yaml"
        f.write_text(textwrap.dedent("""\
            apiVersion: apps/v1
            kind: Deployment
            metadata:
              name: web
            ---
            apiVersion: v1
            kind: Service
            metadata:
              name: web-svc
            ---
            just: data
        """))
        kinds = [r["kind"] for r in _parse_k8s_yaml(f)]
        assert kinds == ["Deployment", "Service"]

    def test_invalid_yaml(self, tmp_path: Path):
        f = tmp_path / "bad.yaml"
        f.write_text("kind: [unclosed\n")
        assert _parse_k8s_yaml(f) == []

    def test_missing_file(self, tmp_path: Path):
        assert _parse_k8s_yaml(tmp_path / "nope.yaml") == []


class TestServiceNameFromManifest:
    def test_first_service(self, tmp_path: Path):
        f = tmp_path / "svc.yaml"
        f.write_text(textwrap.dedent("""\
            apiVersion: apps/v1
            kind: Deployment
            metadata:
              name: web
            ---
            apiVersion: v1
            kind: Service
            metadata:
              name: web-clb
        """))
        assert service_name_from_manifest(f) == "web-clb"

    def test_no_service(self, tmp_path: Path):
        f = tmp_path / "dep.yaml"
        f.write_text("apiVersion: apps/v1\nkind: Deployment\nmetadata:\n  name: web\n")
        assert service_name_from_manifest(f) == ""

    def test_first_resource_by_kind(self, tmp_path: Path):
        f = tmp_path / "dep.yaml"
        f.write_text("apiVersion: apps/v1\nkind: Deployment\nmetadata:\n  name: web\n")
        assert first_resource_name(f, "Deployment") == "web"
        assert first_resource_name(f, "Ingress") == ""


class TestSelectorString:
    def test_sorted(self):
        assert _selector_string({"tier": "fe", "app": "web"}) == "app=web,tier=fe"

    def test_empty(self):
        assert _selector_string({}) == ""

"""
Shared test fixtures and configuration.

FakeClock drives every poll loop: its ``sleep`` advances ``now``
instead of blocking, so six minutes of polling run instantly.
FakeCluster is an in-memory ClusterClient that records every call.
"""

import logging
import textwrap
from pathlib import Path
from typing import Callable

import pytest

from kubeship.core.errors import ClusterCommandError
from kubeship.core.models.deployment import RolloutStatus


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.start = start
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    @property
    def elapsed(self) -> float:
        return self.now - self.start


class FakeCluster:
    """In-memory ClusterClient.

    ``hostnames`` maps a service name to a function of elapsed seconds
    returning the hostname (or None). ``rollout`` is a function of
    elapsed seconds returning a RolloutStatus.
    """

    def __init__(self, clock: FakeClock, namespace: str = "default"):
        self.clock = clock
        self.namespace = namespace
        self.calls: list[tuple] = []
        self.hostnames: dict[str, Callable[[float], str | None]] = {}
        self.rollout: Callable[[float], RolloutStatus] | None = None
        self.fail_apply: set[str] = set()
        self.fail_lookups = 0
        self.pods: list[str] = []
        self.events: list[dict] = []

    def apply_manifest(self, path: Path) -> str:
        self.calls.append(("apply", path.name))
        if path.name in self.fail_apply:
            raise ClusterCommandError(f"apply of {path.name} rejected", returncode=1)
        return f"applied {path.name}"

    def get_service_hostname(self, name: str) -> str | None:
        self.calls.append(("hostname", name))
        if self.fail_lookups:
            self.fail_lookups -= 1
            raise ClusterCommandError("connection refused", returncode=1)
        fn = self.hostnames.get(name)
        return fn(self.clock.elapsed) if fn else None

    def set_deployment_image(self, deployment: str, container: str, image: str) -> str:
        self.calls.append(("set-image", deployment, container, image))
        return "image updated"

    def get_rollout_status(self, deployment: str) -> RolloutStatus:
        self.calls.append(("status", deployment))
        assert self.rollout is not None
        return self.rollout(self.clock.elapsed)

    def get_pod_selector(self, deployment: str) -> str:
        return f"app={deployment}"

    def describe(self, kind: str, name: str) -> str:
        self.calls.append(("describe", kind, name))
        return f"Name: {name}\nKind: {kind}\n"

    def list_text(self, kind: str, selector: str = "") -> str:
        return f"NAME  READY\n{kind}-1  0/1\n"

    def list_names(self, kind: str, selector: str = "") -> list[str]:
        return list(self.pods) if kind == "pods" else []

    def recent_events(self, limit: int = 100) -> list[dict]:
        self.calls.append(("events", limit))
        return self.events[-limit:]

    def count(self, op: str) -> int:
        return sum(1 for c in self.calls if c[0] == op)


def status(desired: int, updated: int, available: int, **kwargs) -> RolloutStatus:
    """Shorthand RolloutStatus for deployment ``web``."""
    return RolloutStatus(
        deployment="web", desired=desired, updated=updated, available=available,
        ready=kwargs.pop("ready", available), generation=2, observed_generation=2, **kwargs,
    )


@pytest.fixture(autouse=True)
def _reset_logging():
    """Drop handlers installed by setup_logging (CLI runs, logging tests)."""
    root = logging.getLogger()
    level = root.level
    yield
    for h in root.handlers[:]:
        if type(h) in (logging.StreamHandler, logging.FileHandler):
            root.removeHandler(h)
            h.close()
    root.setLevel(level)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cluster(clock: FakeClock) -> FakeCluster:
    return FakeCluster(clock)


CLASSIC_SERVICE = textwrap.dedent("""\
    apiVersion: v1
    kind: Service
    metadata:
      name: web-clb
    spec:
      type: LoadBalancer
      selector:
        app: web
      ports:
        - port: 80
""")

NETWORK_SERVICE = textwrap.dedent("""\
    apiVersion: v1
    kind: Service
    metadata:
      name: web-nlb
      annotations:
        service.beta.kubernetes.io/aws-load-balancer-type: nlb
    spec:
      type: LoadBalancer
      selector:
        app: web
      ports:
        - port: 80
""")

PIPELINE_YAML = textwrap.dedent("""\
    name: web
    region: us-east-1
    registry: 123456789012.dkr.ecr.us-east-1.amazonaws.com
    repository: web
    cluster: web-cluster
    deployment:
      name: web
      container: web
    manifests:
      - k8s/deployment.yaml
    exposure:
      classic:
        manifest: k8s/service-clb.yaml
      network:
        manifest: k8s/service-nlb.yaml
""")


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A project directory with kubeship.yml and both service manifests."""
    k8s = tmp_path / "k8s"
    k8s.mkdir()
    (k8s / "deployment.yaml").write_text("apiVersion: apps/v1\nkind: Deployment\n")
    (k8s / "service-clb.yaml").write_text(CLASSIC_SERVICE)
    (k8s / "service-nlb.yaml").write_text(NETWORK_SERVICE)
    (tmp_path / "kubeship.yml").write_text(PIPELINE_YAML)
    return tmp_path

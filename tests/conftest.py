"""
Pytest fixtures: in-memory Docker daemon + fake collaborators.

FakeDocker implements the slice of the docker SDK the commander uses,
with the daemon's label filter semantics: every "key" / "key=value"
filter must match (exact match, ANDed).
"""

import itertools
import os
import re
import sys
from unittest.mock import patch

import pytest
from docker.errors import APIError, NotFound

# ── repo root on sys.path ─────────────────────────────────
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from blueprint_commander.config import BuilderConfig  # noqa: E402
from blueprint_commander.errors import DeploymentError  # noqa: E402
from blueprint_commander.labels import resource_labels  # noqa: E402
from blueprint_commander.models import Deployment  # noqa: E402

_ids = itertools.count(1)
_ports = itertools.count(32768)

_LABEL_CHANGE = re.compile(r'^LABEL "((?:[^"\\]|\\.)*)"="((?:[^"\\]|\\.)*)"$')


def _new_id() -> str:
    return f"{next(_ids):064x}"


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)


def _match(labels, filters) -> bool:
    labels = labels or {}
    for flt in (filters or {}).get("label", []):
        key, sep, value = flt.partition("=")
        if key not in labels:
            return False
        if sep and labels[key] != value:
            return False
    return True


# ─────────────────────────────────────────────────────────────────────────────
# Fake resources
# ─────────────────────────────────────────────────────────────────────────────

class FakeNetwork:
    def __init__(self, docker, name, labels):
        self._docker = docker
        self.id = _new_id()
        self.name = name
        self.attrs = {"Name": name, "Labels": dict(labels or {})}

    def remove(self):
        if self.id not in self._docker.network_store:
            raise NotFound(f"network {self.name} not found")
        attached = [c for c in self._docker.container_store.values()
                    if c.network == self.name and c.running]
        if attached:
            raise APIError(f"error while removing network: network {self.name} has active endpoints")
        del self._docker.network_store[self.id]


class FakeImage:
    def __init__(self, tags, labels):
        self.id = "sha256:" + _new_id()
        self.tags = list(tags)
        self.labels = dict(labels or {})


class FakeContainer:
    def __init__(self, docker, image, name, labels, network, ports, kwargs):
        self._docker = docker
        self.id = _new_id()
        self.image = image
        self.name = name or self.id[:12]
        self.labels = dict(labels or {})
        self.network = network
        self.ports = dict(ports or {})
        self.create_kwargs = kwargs
        self.running = False
        self.published = {}
        self.archives = []
        self.stop_timeout = None
        self.killed_with = None
        self.removed = False
        self.running_at_commit = None
        self.exit_after_start = False

    @property
    def short_id(self):
        return self.id[:12]

    @property
    def attrs(self):
        return {
            "State": {"Running": self.running},
            "Config": {"Labels": self.labels, "Image": self.image},
            "NetworkSettings": {"Ports": self.published},
        }

    def reload(self):
        if self.exit_after_start:
            self.running = False

    def start(self):
        self.running = True
        for key, binding in self.ports.items():
            host_ip = self._docker.publish_ip if self._docker.publish_ip is not None else binding[0]
            self.published[key] = [{"HostIp": host_ip, "HostPort": str(next(_ports))}]

    def stop(self, timeout=None):
        if self.image_tag() in self._docker.fail_stop:
            raise APIError("stop failed")
        self.stop_timeout = timeout
        self.running = False

    def kill(self, signal=None):
        self._docker.events.append(("kill", self.name))
        self.killed_with = signal
        self.running = False

    def remove(self, force=False):
        if self.id not in self._docker.container_store:
            raise NotFound(f"container {self.id} not found")
        if self.running and not force:
            raise APIError("container is running")
        self._docker.events.append(("remove", self.name))
        self.running = False
        self.removed = True
        del self._docker.container_store[self.id]

    def image_tag(self):
        return self.labels.get("commander.context", "")

    def commit(self, repository=None, tag=None, **kwargs):
        if tag in self._docker.fail_commit:
            raise APIError("commit failed")
        self.running_at_commit = self.running
        self._docker.events.append(("commit", self.name))
        self._docker.commits.append({"container": self, "repository": repository, "tag": tag, **kwargs})
        labels = dict(self.labels)
        for change in kwargs.get("changes") or []:
            m = _LABEL_CHANGE.match(change)
            assert m, f"malformed change: {change}"
            labels[_unescape(m.group(1))] = _unescape(m.group(2))
        return self._docker.add_image([f"{repository}:{tag}"], labels)

    def logs(self, **kwargs):
        self._docker.logs_read.append(self.id)
        return b"server starting\nserver crashed\n"

    def put_archive(self, path, data):
        self.archives.append((path, data))
        return True


# ─────────────────────────────────────────────────────────────────────────────
# Fake collections
# ─────────────────────────────────────────────────────────────────────────────

class _Networks:
    def __init__(self, docker):
        self._docker = docker

    def list(self, filters=None):
        if self._docker.fail_network_list:
            raise APIError("network list failed")
        return [n for n in self._docker.network_store.values() if _match(n.attrs["Labels"], filters)]


class _Images:
    def __init__(self, docker):
        self._docker = docker

    def list(self, filters=None):
        if self._docker.fail_image_list:
            raise APIError("image list failed")
        if self._docker.hide_images:
            return []
        return [i for i in self._docker.image_store.values() if _match(i.labels, filters)]

    def remove(self, image, force=False):
        if image in self._docker.fail_image_remove:
            raise APIError("conflict: image is in use")
        if image not in self._docker.image_store:
            raise NotFound(f"image {image} not found")
        del self._docker.image_store[image]


class _Containers:
    def __init__(self, docker):
        self._docker = docker

    def list(self, all=False, filters=None):
        if self._docker.fail_container_list:
            raise APIError("container list failed")
        return [c for c in self._docker.container_store.values()
                if (all or c.running) and _match(c.labels, filters)]

    def get(self, container_id):
        try:
            return self._docker.container_store[container_id]
        except KeyError:
            raise NotFound(f"container {container_id} not found")

    def create(self, image, name=None, labels=None, network=None, ports=None, **kwargs):
        c = FakeContainer(self._docker, image, name, labels, network, ports, kwargs)
        self._docker.container_store[c.id] = c
        self._docker.created.append(c)
        return c


class _API:
    def __init__(self, docker):
        self._docker = docker

    def create_network(self, name, driver=None, labels=None, **kwargs):
        if self._docker.fail_network_create:
            raise APIError("network create failed")
        if self._docker.network_create_response is not None:
            return self._docker.network_create_response
        net = self._docker.add_network(name, labels)
        return {"Id": net.id, "Warning": self._docker.network_warning}


class FakeDocker:
    def __init__(self):
        self.network_store = {}
        self.image_store = {}
        self.container_store = {}
        self.created = []
        self.commits = []
        self.logs_read = []
        # ("kill" | "remove" | "commit", container name), in call order
        self.events = []

        # failure injection
        self.fail_network_list = False
        self.fail_network_create = False
        self.fail_image_list = False
        self.fail_container_list = False
        self.fail_image_remove = set()
        self.fail_stop = set()
        self.fail_commit = set()
        self.hide_images = False
        self.network_warning = ""
        self.network_create_response = None
        self.publish_ip = None

        self.networks = _Networks(self)
        self.images = _Images(self)
        self.containers = _Containers(self)
        self.api = _API(self)

    def add_network(self, name, labels):
        net = FakeNetwork(self, name, labels)
        self.network_store[net.id] = net
        return net

    def add_image(self, tags, labels):
        img = FakeImage(tags, labels)
        self.image_store[img.id] = img
        return img


# ─────────────────────────────────────────────────────────────────────────────
# Fake collaborators
# ─────────────────────────────────────────────────────────────────────────────

class FakeDeployer:
    """Starts a fake container; fails (with the container id) for fail_for."""

    def __init__(self, docker, fail_for=()):
        self.docker = docker
        self.fail_for = set(fail_for)
        self.deployed = []
        self.calls = []

    def deploy(self, base_image, container_name, namespace, blueprint_name,
               instance_name, app_service_registrations, network):
        self.deployed.append(instance_name)
        self.calls.append({
            "base_image": base_image,
            "container_name": container_name,
            "app_service_registrations": app_service_registrations,
            "network": network,
        })
        c = self.docker.containers.create(
            base_image,
            name=container_name,
            labels=resource_labels(namespace, blueprint_name, instance_name),
            network=network,
            ports={"8008/tcp": ("127.0.0.1",)},
        )
        c.start()
        if instance_name in self.fail_for:
            raise DeploymentError(f"{instance_name} never became ready", container_id=c.id)
        port = c.published["8008/tcp"][0]["HostPort"]
        return Deployment(container_id=c.id, base_url=f"http://127.0.0.1:{port}")


class FakeRunner:
    """Records setup runs and hands back canned captured state."""

    def __init__(self, credentials=None, device_ids=None, fail_for=()):
        self._credentials = credentials or {}
        self._device_ids = device_ids or {}
        self.fail_for = set(fail_for)
        self.ran = []

    def run(self, instance, base_url):
        self.ran.append(instance.name)
        if instance.name in self.fail_for:
            raise RuntimeError(f"register on {base_url} returned 500")

    def credentials(self, instance_name):
        return dict(self._credentials.get(instance_name, {}))

    def device_ids(self, instance_name):
        return dict(self._device_ids.get(instance_name, {}))


# ─────────────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def fake_docker():
    """FakeDocker installed as the commander's Docker client."""
    fake = FakeDocker()
    with patch("blueprint_commander.engine.get_client", return_value=fake):
        yield fake


@pytest.fixture
def config():
    return BuilderConfig(namespace="pkg", base_image_uri="server:latest")


@pytest.fixture
def make_deployer(fake_docker):
    def _make(fail_for=()):
        return FakeDeployer(fake_docker, fail_for=fail_for)
    return _make


@pytest.fixture
def make_runner():
    return FakeRunner

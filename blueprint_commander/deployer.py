"""
Blueprint Commander — Docker Deployer
═══════════════════════════════════════
Starts one container from an image and waits until it answers HTTP.

  1. Create the container on the blueprint network with resource labels,
     SERVER_NAME, shared env vars and both API ports published on
     host_bind_ip (random host ports)
  2. Copy application service registrations to /commander/appservice/<id>.yaml
  3. Start it, resolve the published ports, poll the readiness path
  4. Read captured state (credentials, device ids, app services) back from
     the container labels; non-empty when started from a blueprint image

Every failure after create carries the container id so its logs can be
printed before it is removed.
"""

import io
import logging
import os
import tarfile
import time
from typing import Dict, Optional

import httpx
from docker.errors import DockerException

from . import catalog
from .config import BuilderConfig
from .errors import DeploymentError, PortResolutionError
from .labels import (
    app_services_from_labels,
    credentials_from_labels,
    device_ids_from_labels,
    image_reference,
    resource_labels,
)
from .models import Deployment
from .ports import endpoints

logger = logging.getLogger(__name__)

APP_SERVICE_DIR = "commander/appservice"
HOST_GATEWAY = {"host.docker.internal": "host-gateway"}
READINESS_INTERVAL = 0.05  # seconds


def _get_client():
    from .engine import get_client
    return get_client()


def blueprint_image(namespace: str, blueprint_name: str, instance_name: str) -> str:
    """Full reference of the committed image for one instance."""
    repository, tag = image_reference(namespace, blueprint_name, instance_name)
    return f"{repository}:{tag}"


def _registration_archive(registrations: Dict[str, str]) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        for as_id, registration in registrations.items():
            data = registration.encode("utf-8")
            info = tarfile.TarInfo(name=f"{APP_SERVICE_DIR}/{as_id}.yaml")
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


class DockerDeployer:
    """Default deployer: plain docker containers polled over HTTP."""

    def __init__(self, config: BuilderConfig):
        self.config = config

    def _environment(self, instance_name: str) -> Dict[str, str]:
        env = {"SERVER_NAME": instance_name}
        prefix = self.config.env_propagate_prefix
        if prefix:
            for key, value in os.environ.items():
                if key.startswith(prefix) and len(key) > len(prefix):
                    env[key[len(prefix):]] = value
        return env

    def deploy(
        self,
        base_image: str,
        container_name: str,
        namespace: str,
        blueprint_name: str,
        instance_name: str,
        app_service_registrations: Dict[str, str],
        network: str,
    ) -> Deployment:
        cfg = self.config
        client = _get_client()
        try:
            container = client.containers.create(
                base_image,
                name=container_name,
                hostname=instance_name,
                labels=resource_labels(namespace, blueprint_name, instance_name),
                environment=self._environment(instance_name),
                network=network,
                ports={
                    f"{cfg.client_port}/tcp": (cfg.host_bind_ip,),
                    f"{cfg.federation_port}/tcp": (cfg.host_bind_ip,),
                },
                extra_hosts=HOST_GATEWAY,
                detach=True,
            )
        except DockerException as e:
            raise DeploymentError(f"failed to create container {container_name}: {e}") from e

        try:
            if app_service_registrations:
                container.put_archive("/", _registration_archive(app_service_registrations))
            container.start()
            container.reload()
            base_url, federation_url = endpoints(
                container.attrs.get("NetworkSettings", {}).get("Ports"),
                cfg.host_bind_ip, cfg.client_port, cfg.federation_port,
            )
        except PortResolutionError as e:
            catalog.print_port_bindings(container_name)
            raise DeploymentError(f"{container_name}: {e}", container_id=container.id) from e
        except DockerException as e:
            raise DeploymentError(f"{container_name}: {e}", container_id=container.id) from e

        self._wait_until_ready(container, base_url)

        labels = container.labels
        logger.debug(f"[Deployer] {container_name} ready at {base_url} ({container.short_id})")
        return Deployment(
            container_id=container.id,
            base_url=base_url,
            federation_url=federation_url,
            credentials=credentials_from_labels(labels),
            device_ids=device_ids_from_labels(labels),
            app_services=app_services_from_labels(labels),
        )

    def _wait_until_ready(self, container, base_url: str) -> None:
        url = base_url + self.config.readiness_path
        deadline = time.monotonic() + self.config.spawn_timeout
        last_err: Optional[str] = None
        while time.monotonic() < deadline:
            try:
                container.reload()
            except DockerException as e:
                raise DeploymentError(f"{container.name}: inspect failed: {e}",
                                      container_id=container.id) from e
            if not container.attrs.get("State", {}).get("Running", False):
                raise DeploymentError(f"{container.name}: container is no longer running",
                                      container_id=container.id)
            try:
                resp = httpx.get(url, timeout=1.0)
                if resp.status_code == 200:
                    return
                last_err = f"HTTP {resp.status_code}"
            except httpx.HTTPError as e:
                last_err = str(e)
            time.sleep(READINESS_INTERVAL)
        raise DeploymentError(
            f"{container.name}: not ready after {self.config.spawn_timeout}s at {url}: {last_err}",
            container_id=container.id,
        )

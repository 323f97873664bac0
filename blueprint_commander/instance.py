"""
Blueprint Commander — Instance Constructor
═══════════════════════════════════════════
Brings one instance of a blueprint to the point where it can be committed:

  1. Resolve the base image (instance > per-name config > namespace default)
  2. Deploy it on the blueprint network (Deployer)
  3. Run the instance's setup steps against it (InstructionRunner)

Failures are returned on the ConstructionResult, never raised, and the
container id is kept whenever a container was started so the caller can
print its logs before removing it.
"""

import logging
from typing import Dict, Protocol

from .config import BuilderConfig
from .errors import DeploymentError, SetupError
from .labels import app_service_labels, app_services_from_labels, context_label
from .models import ConstructionResult, Deployment, Instance

logger = logging.getLogger(__name__)


# ── Collaborators ─────────────────────────────────────────

class Deployer(Protocol):
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
        """
        Start a reachable container; raise DeploymentError otherwise.
        Labels on the container are carried into the committed image.
        """
        ...


class InstructionRunner(Protocol):
    def run(self, instance: Instance, base_url: str) -> None:
        """Execute the instance's setup steps; raise on failure."""
        ...

    def credentials(self, instance_name: str) -> Dict[str, str]:
        ...

    def device_ids(self, instance_name: str) -> Dict[str, str]:
        ...


# ── Construction ──────────────────────────────────────────

def resolve_base_image(instance: Instance, config: BuilderConfig) -> str:
    if instance.base_image_uri:
        return instance.base_image_uri
    return config.base_image_uris.get(instance.name.lower(), config.base_image_uri)


def construct_instance(
    instance: Instance,
    blueprint_name: str,
    network: str,
    config: BuilderConfig,
    deployer: Deployer,
    runner: InstructionRunner,
) -> ConstructionResult:
    """Deploy an instance and run its setup, keeping the container alive."""
    context = context_label(config.namespace, blueprint_name, instance.name)
    result = ConstructionResult(instance=instance, context=context, namespace=config.namespace)
    logger.debug(f"[Instance] {context} : constructing...")

    base_image = resolve_base_image(instance, config)
    if not base_image:
        result.error = DeploymentError(f"{context} : no base image configured")
        return result

    registrations = app_services_from_labels(app_service_labels(instance))

    try:
        dep = deployer.deploy(
            base_image,
            f"commander_{context}",
            config.namespace,
            blueprint_name,
            instance.name,
            registrations,
            network,
        )
    except DeploymentError as e:
        logger.error(f"[Instance] {context} : failed to deploy base image: {e}")
        result.container_id = e.container_id
        result.error = e
        return result
    except Exception as e:
        # docker-py raises requests errors when the daemon connection drops
        logger.error(f"[Instance] {context} : failed to deploy base image: {e}")
        err = DeploymentError(f"{context} : {e}", container_id=getattr(e, "container_id", "") or "")
        err.__cause__ = e
        result.container_id = err.container_id
        result.error = err
        return result

    result.container_id = dep.container_id
    result.base_url = dep.base_url
    logger.debug(f"[Instance] {context} : deployed {base_image} to {dep.base_url} ({dep.container_id[:12]})")

    try:
        runner.run(instance, dep.base_url)
    except Exception as e:
        logger.error(f"[Instance] {context} : failed to run instructions: {e}")
        err = SetupError(f"{context} : failed to run instructions: {e}")
        err.__cause__ = e
        result.error = err
    return result

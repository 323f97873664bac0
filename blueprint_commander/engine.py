"""
Blueprint Commander — Engine (Blueprint Builder)
═══════════════════════════════════════════════════
Builds and caches blueprint images:

  1. Provision the blueprint network (reused if it exists)
  2. Construct instances one after the other; stop at the first failure
  3. Commit every constructed instance, then kill + remove its container
  4. Wait for the committed images to show up in the image list
  5. Remove the blueprint network

Images are looked up by label, so a blueprint name is built once per
namespace until cleanup removes it.

Uses docker.from_env() to connect to the host Docker daemon.
"""

import logging
import threading
import time
from contextlib import ExitStack
from typing import Callable, List, Optional

import docker

from . import catalog
from .cleanup import cleanup as cleanup_namespace
from .commit import commit_results
from .config import BuilderConfig
from .errors import BlueprintError, ConstructionError, ProvisioningError, VisibilityTimeoutError
from .instance import Deployer, InstructionRunner, construct_instance
from .labels import LabelQuery
from .models import Blueprint, ConstructionResult
from .network import ensure_network, remove_blueprint_networks

logger = logging.getLogger(__name__)

# Committed images can take a moment to appear in `docker image ls`
IMAGE_VISIBILITY_TIMEOUT = 5.0  # seconds
IMAGE_VISIBILITY_INTERVAL = 0.1  # seconds


# ── Singleton Client ──────────────────────────────────────

_client: Optional[docker.DockerClient] = None
_lock = threading.Lock()


def get_client() -> docker.DockerClient:
    """Get or create the Docker client (singleton)."""
    global _client
    if _client is None:
        with _lock:
            if _client is None:
                _client = docker.from_env()
    return _client


def reset_client() -> None:
    """Drop the cached client, e.g. after a daemon restart."""
    global _client
    with _lock:
        _client = None


# ── Polling ───────────────────────────────────────────────

def wait_for(fetch: Callable[[], List], done: Callable[[List], bool],
             timeout: float, interval: float) -> List:
    """
    Call fetch() until done(result) or timeout expires.
    Always fetches at least once; returns the last result.
    """
    deadline = time.monotonic() + timeout
    while True:
        result = fetch()
        if done(result) or time.monotonic() >= deadline:
            return result
        time.sleep(interval)


# ── Builder ───────────────────────────────────────────────

class BlueprintBuilder:
    """
    Builds blueprint images in one namespace.

    runner_factory is called once per build and returns the instruction
    runner that executes setup steps and remembers what they captured.
    """

    def __init__(self, config: BuilderConfig,
                 runner_factory: Callable[[Blueprint], InstructionRunner],
                 deployer: Optional[Deployer] = None):
        self.config = config
        self.runner_factory = runner_factory
        if deployer is None:
            from .deployer import DockerDeployer
            deployer = DockerDeployer(config)
        self.deployer = deployer

    @property
    def namespace(self) -> str:
        return self.config.namespace

    def _query(self, blueprint_name: str) -> LabelQuery:
        return LabelQuery(namespace=self.namespace, blueprint=blueprint_name)

    # ── Public API ────────────────────────────────────────

    def construct_if_not_exist(self, blueprint: Blueprint) -> bool:
        """Build the blueprint unless an image for its name exists. True if built."""
        try:
            images = catalog.list_images(self._query(blueprint.name))
        except Exception as e:
            raise BlueprintError(
                f"construct_if_not_exist({blueprint.name}): failed to list images: {e}"
            ) from e
        if images:
            logger.debug(f"[Builder] Blueprint '{blueprint.name}' already built, reusing")
            return False
        self.construct(blueprint)
        return True

    def construct(self, blueprint: Blueprint) -> List[str]:
        """
        Build every instance of a blueprint into an image.
        Returns the ids of the images found for the blueprint.

        Raises:
            ConstructionError: any instance failed to deploy, set up or commit
            VisibilityTimeoutError: images never appeared in the image list
        """
        try:
            errors = self._construct(blueprint)
            if errors:
                for e in errors:
                    logger.error(f"[Builder] Could not construct blueprint: {e}")
                raise ConstructionError(blueprint.name, errors)

            expected = len(blueprint.instances)
            try:
                images = wait_for(
                    lambda: catalog.list_images(self._query(blueprint.name)),
                    lambda found: len(found) >= expected,
                    IMAGE_VISIBILITY_TIMEOUT,
                    IMAGE_VISIBILITY_INTERVAL,
                )
            except Exception as e:
                raise BlueprintError(f"{blueprint.name}: failed to list images: {e}") from e
        finally:
            # after the containers are gone, so the network has no endpoints left
            remove_blueprint_networks(self.namespace, blueprint.name)

        if len(images) < expected:
            raise VisibilityTimeoutError(blueprint.name, expected, len(images))

        logger.info(
            f"[Builder] Constructed blueprint '{blueprint.name}': "
            + ", ".join(f"{img.id}=>{img.labels}" for img in images)
        )
        return [img.id for img in images]

    def cleanup(self) -> dict:
        """Remove everything this namespace owns, except kept blueprints."""
        return cleanup_namespace(self.namespace, self.config.keep_blueprints)

    # ── Internals ─────────────────────────────────────────

    def _construct(self, blueprint: Blueprint) -> List[Exception]:
        """Construct all instances sequentially, then commit them."""
        logger.info(f"[Builder] Constructing blueprint '{blueprint.name}'")

        try:
            network = ensure_network(self.namespace, blueprint.name)
        except ProvisioningError as e:
            return [e]

        runner = self.runner_factory(blueprint)
        results: List[ConstructionResult] = []

        with ExitStack() as releases:
            for instance in blueprint.instances:
                res = construct_instance(
                    instance, blueprint.name, network,
                    self.config, self.deployer, runner,
                )
                if not res.ok:
                    if res.container_id:
                        # the container may have interesting logs
                        catalog.print_logs(res.container_id, res.context)
                        catalog.remove_container(res.container_id, res.context)
                    # no point setting up the remaining instances
                    return [res.error]
                releases.callback(self._release, res)
                results.append(res)

            _, errors = commit_results(results, blueprint, runner)
        return errors

    def _release(self, res: ConstructionResult) -> None:
        """Kill and remove an instance container. Never raises."""
        catalog.kill_container(res.container_id, res.context)
        catalog.remove_container(res.container_id, res.context)

"""
Blueprint Commander — Commit Pipeline
═══════════════════════════════════════
Freezes every successfully constructed instance into an image:

  1. Collect labels: kept credentials, device ids, app service registrations
  2. Stop the container (10s grace) so databases inside shut down cleanly;
     committing a live Postgres leaves a data dir that needs slow recovery
  3. Commit (paused) to localhost/commander:<namespace>.<blueprint>.<instance>

A failure for one instance is recorded and the others are still committed.
"""

import logging
from typing import Dict, List, Tuple

from .errors import CommitError
from .instance import InstructionRunner
from .labels import (
    LOCAL_REPOSITORY,
    app_service_labels,
    credential_labels,
    device_id_labels,
    resource_labels,
    to_changes,
)
from .models import Blueprint, ConstructionResult

logger = logging.getLogger(__name__)

STOP_TIMEOUT = 10  # seconds
COMMIT_AUTHOR = "blueprint-commander"


def _get_client():
    from .engine import get_client
    return get_client()


def image_labels(
    result: ConstructionResult,
    blueprint: Blueprint,
    runner: InstructionRunner,
) -> Dict[str, str]:
    """
    Labels for the committed image: ownership labels of the instance, then
    the state captured while setting it up. Ownership does not depend on
    the deployer having labelled the container.
    """
    name = result.instance.name
    labels = resource_labels(result.namespace, blueprint.name, name)
    labels.update(credential_labels(runner.credentials(name), blueprint.keep_credentials_for))
    labels.update(device_id_labels(runner.device_ids(name)))
    labels.update(app_service_labels(result.instance))
    return labels


def commit_instance(result: ConstructionResult, labels: Dict[str, str]) -> str:
    """Stop then commit one container. Returns the new image id."""
    context = result.context
    try:
        container = _get_client().containers.get(result.container_id)
        logger.debug(f"[Commit] {context}: Stopping container: {result.container_id[:12]}")
        container.stop(timeout=STOP_TIMEOUT)
        logger.debug(f"[Commit] {context}: Stopped container: {result.container_id[:12]}")
    except Exception as e:
        raise CommitError(f"{context} : failed to stop container: {e}") from e

    try:
        # conf={} because podman's compat API returns 500 on an empty body
        image = container.commit(
            repository=LOCAL_REPOSITORY,
            tag=context,
            author=COMMIT_AUTHOR,
            pause=True,
            changes=to_changes(labels),
            conf={},
        )
    except Exception as e:
        raise CommitError(f"{context} : failed to commit container: {e}") from e

    image_id = image.id.replace("sha256:", "", 1)
    logger.debug(f"[Commit] {context}: Created docker image {image_id}")
    return image_id


def commit_results(
    results: List[ConstructionResult],
    blueprint: Blueprint,
    runner: InstructionRunner,
) -> Tuple[List[str], List[Exception]]:
    """Commit every successful result. Returns (image ids, errors)."""
    image_ids: List[str] = []
    errors: List[Exception] = []
    for result in results:
        if not result.ok:
            continue
        try:
            labels = image_labels(result, blueprint, runner)
            image_ids.append(commit_instance(result, labels))
        except CommitError as e:
            logger.error(f"[Commit] {e}")
            errors.append(e)
        except Exception as e:
            logger.error(f"[Commit] {result.context} : failed to collect image labels: {e}")
            errors.append(CommitError(f"{result.context} : failed to collect image labels: {e}"))
    return image_ids, errors

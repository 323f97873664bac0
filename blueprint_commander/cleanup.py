"""
Blueprint Commander — Garbage Collector
═════════════════════════════════════════
Removes everything a namespace owns, in three independent passes:

  containers → every container labelled (managed, namespace), any state
  networks   → every network labelled (managed, namespace)
  images     → every image labelled (managed, namespace), except
               - images with any tag outside LOCAL_REPOSITORY (foreign)
               - images whose blueprint is in the keep list

Nothing here raises: a failing pass is logged and the next one still runs.
Runs mid-build to detach networks and at session end for full teardown.
"""

import logging
from typing import Dict, Iterable, List

from . import catalog
from .labels import BLUEPRINT_LABEL, LabelQuery, is_local_image

logger = logging.getLogger(__name__)


def remove_containers(namespace: str) -> List[str]:
    try:
        containers = catalog.list_containers(LabelQuery(namespace=namespace))
    except Exception as e:
        logger.error(f"[Cleanup] Failed to list containers for {namespace}: {e}")
        return []
    return [c.id for c in containers if catalog.remove_container(c.id, namespace)]


def remove_networks(namespace: str) -> List[str]:
    try:
        networks = catalog.list_networks(LabelQuery(namespace=namespace))
    except Exception as e:
        logger.error(f"[Cleanup] Failed to list networks for {namespace}: {e}")
        return []
    return [n.name for n in networks if catalog.remove_network(n)]


def remove_images(namespace: str, keep_blueprints: Iterable[str] = ()) -> List[str]:
    keep = set(keep_blueprints)
    try:
        images = catalog.list_images(LabelQuery(namespace=namespace))
    except Exception as e:
        logger.error(f"[Cleanup] Failed to list images for {namespace}: {e}")
        return []

    removed = []
    for img in images:
        if not is_local_image(img.tags):
            logger.debug(f"[Cleanup] Not cleaning up image with tags: {img.tags}")
            continue
        blueprint = (img.labels or {}).get(BLUEPRINT_LABEL, "")
        if blueprint in keep:
            logger.debug(f"[Cleanup] Keeping image created from blueprint {blueprint}")
            continue
        if catalog.remove_image(img.id):
            removed.append(img.id)
    return removed


def cleanup(namespace: str, keep_blueprints: Iterable[str] = ()) -> Dict[str, List[str]]:
    """Remove all containers, networks and non-retained images of a namespace."""
    result = {
        "containers": remove_containers(namespace),
        "networks": remove_networks(namespace),
        "images": remove_images(namespace, keep_blueprints),
    }
    logger.info(
        f"[Cleanup] {namespace}: removed {len(result['containers'])} containers, "
        f"{len(result['networks'])} networks, {len(result['images'])} images"
    )
    return result

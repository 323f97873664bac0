"""
Blueprint Commander — Resource Catalog
═══════════════════════════════════════
Thin layer over the Docker SDK list/remove calls, queried by LabelQuery.

List calls raise docker errors to the caller. Remove/kill helpers are
best-effort: they log and report success as a bool.
Also holds the diagnostics printed when an instance fails to build.
"""

import logging
from typing import List

from docker.errors import APIError, NotFound

from .labels import LabelQuery

logger = logging.getLogger(__name__)


def _get_client():
    from .engine import get_client
    return get_client()


# ── Queries ───────────────────────────────────────────────

def list_networks(query: LabelQuery) -> List:
    return _get_client().networks.list(filters=query.to_filters())


def list_images(query: LabelQuery) -> List:
    return _get_client().images.list(filters=query.to_filters())


def list_containers(query: LabelQuery) -> List:
    """All matching containers, running or not."""
    return _get_client().containers.list(all=True, filters=query.to_filters())


# ── Removal ───────────────────────────────────────────────

def remove_container(container_id: str, context: str = "") -> bool:
    try:
        _get_client().containers.get(container_id).remove(force=True)
        logger.debug(f"[Catalog] {context} removed container {container_id[:12]}")
        return True
    except NotFound:
        return False
    except Exception as e:
        logger.error(f"[Catalog] {context} failed to remove container {container_id[:12]}: {e}")
        return False


def remove_image(image_id: str) -> bool:
    try:
        _get_client().images.remove(image=image_id, force=True)
        logger.debug(f"[Catalog] Removed image {image_id}")
        return True
    except NotFound:
        return False
    except Exception as e:
        logger.error(f"[Catalog] Failed to remove image {image_id}: {e}")
        return False


def remove_network(network) -> bool:
    try:
        network.remove()
        logger.debug(f"[Catalog] Removed network {network.name}")
        return True
    except NotFound:
        return False
    except APIError as e:
        if "has active endpoints" in str(e).lower():
            logger.warning(f"[Catalog] Cannot remove {network.name}: containers still connected")
        else:
            logger.error(f"[Catalog] Failed to remove network {network.name}: {e}")
        return False
    except Exception as e:
        logger.error(f"[Catalog] Failed to remove network {network.name}: {e}")
        return False


def kill_container(container_id: str, context: str = "") -> bool:
    """SIGKILL a container if it is still running."""
    try:
        container = _get_client().containers.get(container_id)
    except Exception as e:
        logger.warning(f"[Catalog] {context} can't get status of {container_id[:12]}: {e}")
        return False

    if not container.attrs.get("State", {}).get("Running", False):
        return False

    try:
        container.kill(signal="KILL")
        return True
    except Exception as e:
        logger.warning(f"[Catalog] {context} failed to kill container {container_id[:12]}: {e}")
        return False


# ── Diagnostics ───────────────────────────────────────────

def container_logs(container_id: str) -> str:
    logs = _get_client().containers.get(container_id).logs(
        stdout=True, stderr=True, follow=False
    )
    return logs.decode("utf-8", errors="replace")


def print_logs(container_id: str, context: str) -> None:
    """Dump a container's stdout/stderr into the log."""
    try:
        logs = container_logs(container_id)
    except Exception as e:
        logger.error(f"[Catalog] {context} : Failed to extract container logs: {e}")
        return
    logger.error(
        f"============================================\n"
        f"{context} : Server logs:\n{logs}\n"
        f"============== {context} : END LOGS =============="
    )


def print_port_bindings(context: str) -> None:
    """Log the host → container port bindings of every managed container."""
    try:
        containers = list_containers(LabelQuery())
    except Exception as e:
        logger.error(f"[Catalog] {context} : Failed to list containers for port bindings: {e}")
        return

    lines = [f"============== {context} : START ALL PORT BINDINGS =============="]
    for c in containers:
        lines.append(f"Container: {c.id}: {c.name}")
        lines.append("    (host) -> (container)")
        ports = c.attrs.get("NetworkSettings", {}).get("Ports") or {}
        for container_port, bindings in ports.items():
            host = ", ".join(
                f"{b.get('HostIp', '')}:{b.get('HostPort', '')}" for b in bindings or []
            )
            lines.append(f"    {host} -> {container_port}")
    lines.append(f"=============== {context} : END ALL PORT BINDINGS ===============")
    logger.info("\n".join(lines))

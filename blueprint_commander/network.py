"""
Blueprint Commander — Network Provisioner
═══════════════════════════════════════════
One user-defined bridge network per (namespace, blueprint), so instances of
a blueprint resolve each other by container name.

Network naming: commander_{namespace}_{blueprint}

An existing network is always reused. There is no lock around the
check-then-create: callers serialize builds that share a namespace.
"""

import logging
from typing import List

from docker.errors import DockerException

from . import catalog
from .errors import ProvisioningError
from .labels import LabelQuery, resource_labels

logger = logging.getLogger(__name__)


def _get_client():
    from .engine import get_client
    return get_client()


def network_name(namespace: str, blueprint_name: str) -> str:
    return f"commander_{namespace}_{blueprint_name}"


def ensure_network(namespace: str, blueprint_name: str) -> str:
    """Return the blueprint's network name, creating the network if needed."""
    query = LabelQuery(namespace=namespace, blueprint=blueprint_name)
    try:
        existing = catalog.list_networks(query)
    except DockerException as e:
        raise ProvisioningError(f"{blueprint_name}: failed to list networks. {e}") from e

    if existing:
        if len(existing) > 1:
            logger.warning(
                f"[Network] Got {len(existing)} networks for "
                f"namespace={namespace} blueprint={blueprint_name}, using {existing[0].name}"
            )
        return existing[0].name

    name = network_name(namespace, blueprint_name)
    try:
        resp = _get_client().api.create_network(
            name,
            driver="bridge",
            labels=resource_labels(namespace, blueprint_name),
        )
    except DockerException as e:
        raise ProvisioningError(f"{blueprint_name}: failed to create docker network. {e}") from e

    network_id = (resp or {}).get("Id", "")
    warning = (resp or {}).get("Warning", "")
    if warning:
        if not network_id:
            raise ProvisioningError(
                f"{blueprint_name}: fatal warning while creating docker network. {warning}"
            )
        logger.warning(f"[Network] {name}: {warning}")
    if not network_id:
        raise ProvisioningError(f"{blueprint_name}: unexpected empty ID while creating network")

    logger.info(f"[Network] Created: {name} ({network_id[:12]})")
    return name


def remove_blueprint_networks(namespace: str, blueprint_name: str) -> List[str]:
    """Best-effort removal of the blueprint's network(s)."""
    try:
        networks = catalog.list_networks(LabelQuery(namespace=namespace, blueprint=blueprint_name))
    except Exception as e:
        logger.error(f"[Network] List failed for {namespace}/{blueprint_name}: {e}")
        return []
    return [n.name for n in networks if catalog.remove_network(n)]

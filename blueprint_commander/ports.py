"""
Blueprint Commander — Port Resolution
═══════════════════════════════════════
Maps a container's published ports to an address reachable from the host.

Docker reports bindings per container port:
    {"8008/tcp": [{"HostIp": "0.0.0.0", "HostPort": "32768"}]}

Resolution order for a requested host_bind_ip:
  1. a binding whose HostIp equals host_bind_ip (returned as-is)
  2. a 0.0.0.0 binding ("all interfaces"), rewritten to host_bind_ip
  3. an empty HostIp when host_bind_ip is 127.0.0.1 (podman v4 reports
     loopback-only bindings this way)
Anything else is an error, never a silent default.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .errors import PortResolutionError

ALL_INTERFACES = "0.0.0.0"
LOOPBACK = "127.0.0.1"


@dataclass(frozen=True)
class PortBinding:
    host_ip: str
    host_port: str

    @property
    def address(self) -> str:
        return f"{self.host_ip}:{self.host_port}"


def _parse(raw: Dict) -> PortBinding:
    # Docker inspect says HostIp, some compatible runtimes say HostIP
    host_ip = raw.get("HostIp", raw.get("HostIP", "")) or ""
    host_port = raw.get("HostPort", "") or ""
    return PortBinding(host_ip=host_ip, host_port=str(host_port))


def resolve_port(
    ports: Optional[Dict[str, Optional[List[Dict]]]],
    host_bind_ip: str,
    port: int,
    protocol: str = "tcp",
) -> PortBinding:
    """Find the binding of a container port reachable on host_bind_ip."""
    ports = ports or {}
    key = f"{port}/{protocol}"
    if key not in ports:
        raise PortResolutionError(f"port {key} not exposed - exposed ports: {ports}")
    raw_bindings = ports[key]
    if not raw_bindings:
        raise PortResolutionError(f"port {key} exposed with no mapped host port: {ports}")

    bindings = [_parse(b) for b in raw_bindings]

    for b in bindings:
        if b.host_ip == host_bind_ip:
            return b
    for b in bindings:
        if b.host_ip == ALL_INTERFACES:
            return PortBinding(host_ip=host_bind_ip, host_port=b.host_port)
    if host_bind_ip == LOOPBACK:
        for b in bindings:
            if b.host_ip == "":
                return PortBinding(host_ip=host_bind_ip, host_port=b.host_port)

    raise PortResolutionError(
        f"unable to find matching port binding for {host_bind_ip} {key}: {ports}"
    )


def endpoints(
    ports: Optional[Dict[str, Optional[List[Dict]]]],
    host_bind_ip: str,
    client_port: int,
    federation_port: int,
) -> Tuple[str, str]:
    """(base_url, federation_base_url) of a running instance."""
    try:
        client = resolve_port(ports, host_bind_ip, client_port)
    except PortResolutionError as e:
        raise PortResolutionError(f"problem finding client API port: {e}") from e
    try:
        federation = resolve_port(ports, host_bind_ip, federation_port)
    except PortResolutionError as e:
        raise PortResolutionError(f"problem finding federation API port: {e}") from e
    return f"http://{client.address}", f"https://{federation.address}"

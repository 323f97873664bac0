"""
Blueprint Commander — Blueprint Schema + Pydantic Models
═══════════════════════════════════════════════════════════
Defines the data structures for:
- Blueprint: named set of server instances to pre-provision and freeze
- Instance: one server inside a blueprint (base image + setup steps)
- ApplicationService: registration attached to an instance as image metadata
- ConstructionResult: per-instance outcome of a build
- Deployment: a running container handed back by the deployer
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Names end up in Docker image tags and network names.
NAME_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_-]*$")


def validate_name(value: str, what: str) -> str:
    if not NAME_PATTERN.match(value or ""):
        raise ValueError(
            f"invalid {what} name '{value}': use letters, digits, '_' or '-'"
        )
    return value


# ── Application Service ───────────────────────────────────

class ApplicationService(BaseModel):
    """An application service registered against an instance."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Registration identifier")
    hs_token: str = Field(..., description="Token the server presents to the service")
    as_token: str = Field(..., description="Token the service presents to the server")
    url: str = Field(default="", description="Callback URL of the service")
    sender_localpart: str = Field(..., description="Localpart of the sender identity")
    rate_limited: bool = False
    send_ephemeral: bool = False
    enable_encryption: bool = False


# ── Instance ──────────────────────────────────────────────

class Instance(BaseModel):
    """One server instance of a blueprint."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Unique within its blueprint (e.g. 'hs1')")
    base_image_uri: Optional[str] = Field(
        default=None,
        description="Overrides the configured base image for this instance",
    )
    steps: Tuple[Dict[str, Any], ...] = Field(
        default_factory=tuple,
        description="Setup steps handed verbatim to the instruction runner",
    )
    application_services: Tuple[ApplicationService, ...] = Field(default_factory=tuple)

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        return validate_name(v, "instance")


# ── Blueprint ─────────────────────────────────────────────

class Blueprint(BaseModel):
    """
    Blueprint: the template for a cached multi-instance image set.
    Immutable once built; the name is the cache key.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Unique identifier within a namespace")
    instances: Tuple[Instance, ...] = Field(..., description="Constructed in order")
    keep_credentials_for: Tuple[str, ...] = Field(
        default_factory=tuple,
        description=(
            "Identities whose credentials are kept as image labels. "
            "Empty = keep every captured credential."
        ),
    )

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        return validate_name(v, "blueprint")

    @model_validator(mode="after")
    def _check_instances(self) -> "Blueprint":
        if not self.instances:
            raise ValueError(f"blueprint '{self.name}' has no instances")
        seen = set()
        for inst in self.instances:
            if inst.name in seen:
                raise ValueError(
                    f"blueprint '{self.name}' has duplicate instance '{inst.name}'"
                )
            seen.add(inst.name)
        return self


# ── Runtime Results ───────────────────────────────────────

@dataclass
class ConstructionResult:
    """Outcome of constructing one instance."""
    instance: Instance
    context: str
    container_id: str = ""
    error: Optional[Exception] = None
    base_url: str = ""
    namespace: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class Deployment:
    """A started, reachable container."""
    container_id: str
    base_url: str
    federation_url: str = ""
    credentials: Dict[str, str] = field(default_factory=dict)
    device_ids: Dict[str, str] = field(default_factory=dict)
    app_services: Dict[str, str] = field(default_factory=dict)

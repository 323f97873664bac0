"""
Blueprint Commander — Configuration
═════════════════════════════════════
All settings in one place, overridable via environment variables.

  COMMANDER_NAMESPACE          partition for every resource we create
  COMMANDER_BASE_IMAGE         default base image for instances
  COMMANDER_BASE_IMAGE_<NAME>  base image for the instance called <name>
  COMMANDER_KEEP_BLUEPRINTS    space separated blueprint names cleanup keeps
  COMMANDER_DEBUG              1/true → step-by-step build logging
  COMMANDER_HOST_BIND_IP       host address published ports bind to
  COMMANDER_SPAWN_TIMEOUT      seconds to wait for an instance to answer
  COMMANDER_SHARE_ENV_PREFIX   env vars with this prefix are passed to instances
"""

import logging
import os
from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from .models import validate_name

ENV_PREFIX = "COMMANDER_"
BASE_IMAGE_PREFIX = ENV_PREFIX + "BASE_IMAGE_"

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes")


class BuilderConfig(BaseModel):
    """Settings shared by the builder, the deployer and cleanup."""
    namespace: str = Field(default="default", description="Resource partition")
    base_image_uri: str = Field(default="", description="Namespace default base image")
    base_image_uris: Dict[str, str] = Field(
        default_factory=dict, description="Per-instance-name base images"
    )
    keep_blueprints: List[str] = Field(
        default_factory=list, description="Blueprints whose images survive cleanup"
    )
    debug: bool = False
    host_bind_ip: str = "127.0.0.1"
    spawn_timeout: float = Field(default=30.0, description="Seconds")
    env_propagate_prefix: str = ""
    client_port: int = 8008
    federation_port: int = 8448
    readiness_path: str = "/_matrix/client/versions"

    @field_validator("namespace")
    @classmethod
    def _check_namespace(cls, v: str) -> str:
        return validate_name(v, "namespace")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "BuilderConfig":
        env = os.environ if environ is None else environ

        base_image_uris = {
            key[len(BASE_IMAGE_PREFIX):].lower(): value
            for key, value in env.items()
            if key.startswith(BASE_IMAGE_PREFIX) and value
        }

        return cls(
            namespace=env.get("COMMANDER_NAMESPACE", "default"),
            base_image_uri=env.get("COMMANDER_BASE_IMAGE", ""),
            base_image_uris=base_image_uris,
            keep_blueprints=env.get("COMMANDER_KEEP_BLUEPRINTS", "").split(),
            debug=_as_bool(env.get("COMMANDER_DEBUG", "false")),
            host_bind_ip=env.get("COMMANDER_HOST_BIND_IP", "127.0.0.1"),
            spawn_timeout=float(env.get("COMMANDER_SPAWN_TIMEOUT", "30")),
            env_propagate_prefix=env.get("COMMANDER_SHARE_ENV_PREFIX", ""),
            client_port=int(env.get("COMMANDER_CLIENT_PORT", "8008")),
            federation_port=int(env.get("COMMANDER_FEDERATION_PORT", "8448")),
            readiness_path=env.get("COMMANDER_READINESS_PATH", "/_matrix/client/versions"),
        )


def setup_logging(config: BuilderConfig) -> None:
    """Configure root logging; DEBUG shows every build step."""
    level = logging.DEBUG if config.debug else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("blueprint_commander").setLevel(level)

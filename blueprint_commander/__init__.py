"""
Blueprint Commander
═══════════════════
Builds and caches Docker images of pre-provisioned server instances
("blueprints") for use as test fixtures.

    builder = BlueprintBuilder(BuilderConfig.from_env(), runner_factory)
    builder.construct_if_not_exist(blueprint)
    ...
    builder.cleanup()
"""

from .config import BuilderConfig, setup_logging
from .engine import BlueprintBuilder, get_client, reset_client
from .errors import (
    BlueprintError,
    CommitError,
    ConstructionError,
    DeploymentError,
    PortResolutionError,
    ProvisioningError,
    SetupError,
    VisibilityTimeoutError,
)
from .models import ApplicationService, Blueprint, ConstructionResult, Deployment, Instance

__all__ = [
    "ApplicationService",
    "Blueprint",
    "BlueprintBuilder",
    "BlueprintError",
    "BuilderConfig",
    "CommitError",
    "ConstructionError",
    "ConstructionResult",
    "Deployment",
    "DeploymentError",
    "Instance",
    "PortResolutionError",
    "ProvisioningError",
    "SetupError",
    "VisibilityTimeoutError",
    "get_client",
    "reset_client",
    "setup_logging",
]

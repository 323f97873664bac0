"""
Blueprint Commander — Errors
═══════════════════════════════
One exception per failure kind of a build:

  ProvisioningError      network list/create failed (fatal to the build)
  DeploymentError        base image did not start or become reachable
  SetupError             the instruction runner failed against an instance
  CommitError            stop or commit failed for one instance
  VisibilityTimeoutError committed images never showed up in the image list
  ConstructionError      aggregate of the above for one blueprint
"""

from typing import List


class BlueprintError(Exception):
    """Base class for all blueprint build failures."""


class ProvisioningError(BlueprintError):
    pass


class DeploymentError(BlueprintError):
    """Raised by deployers. Carries the container id when one was started."""
    def __init__(self, message: str, container_id: str = ""):
        self.container_id = container_id
        super().__init__(message)


class SetupError(BlueprintError):
    pass


class CommitError(BlueprintError):
    pass


class VisibilityTimeoutError(BlueprintError):
    def __init__(self, blueprint_name: str, expected: int, found: int):
        self.blueprint_name = blueprint_name
        self.expected = expected
        self.found = found
        super().__init__(
            f"failed to find built images for '{blueprint_name}': "
            f"expected {expected}, found {found}. Did they all build ok?"
        )


class PortResolutionError(BlueprintError):
    pass


class ConstructionError(BlueprintError):
    """All errors collected while constructing one blueprint, in order."""
    def __init__(self, blueprint_name: str, errors: List[Exception]):
        self.blueprint_name = blueprint_name
        self.errors = list(errors)
        details = "; ".join(str(e) for e in self.errors)
        super().__init__(
            f"errors whilst constructing blueprint {blueprint_name}: [{details}]"
        )

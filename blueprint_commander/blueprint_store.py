"""
Blueprint Commander — Blueprint Store (YAML)
═════════════════════════════════════════════
Blueprints can be kept as YAML files next to the tests that use them:

    name: one_to_one_room
    keep_credentials_for: ["@alice:hs1"]
    instances:
      - name: hs1
        steps:
          - {action: register, user: alice}
        application_services: []
"""

import logging
from pathlib import Path
from typing import Dict, Union

import yaml

from .models import Blueprint

logger = logging.getLogger(__name__)


def import_from_yaml(yaml_content: str) -> Blueprint:
    """Parse a YAML document into a Blueprint."""
    data = yaml.safe_load(yaml_content)
    if not isinstance(data, dict):
        raise ValueError("blueprint YAML must be a mapping")
    return Blueprint.model_validate(data)


def export_to_yaml(blueprint: Blueprint) -> str:
    data = blueprint.model_dump(mode="json", exclude_none=True)
    return yaml.safe_dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False)


def load_blueprint(path: Union[str, Path]) -> Blueprint:
    return import_from_yaml(Path(path).read_text(encoding="utf-8"))


def load_blueprints(directory: Union[str, Path]) -> Dict[str, Blueprint]:
    """All *.yaml / *.yml blueprints in a directory, keyed by name."""
    blueprints: Dict[str, Blueprint] = {}
    files = sorted(Path(directory).glob("*.yaml")) + sorted(Path(directory).glob("*.yml"))
    for path in files:
        bp = load_blueprint(path)
        if bp.name in blueprints:
            raise ValueError(f"duplicate blueprint '{bp.name}' in {path}")
        blueprints[bp.name] = bp
        logger.debug(f"[Store] Loaded blueprint '{bp.name}' from {path.name}")
    return blueprints

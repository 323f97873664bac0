"""
Blueprint Commander — Resource Labels
═══════════════════════════════════════
Docker labels are the only state we persist. Every network, image and
container we create carries:

  commander.managed   = true            ownership marker
  commander.namespace = <namespace>
  commander.blueprint = <blueprint>     blueprint-scoped resources
  commander.instance  = <instance>      containers (inherited by images)
  commander.context   = <ns>.<bp>.<inst>

Committed images additionally carry the state captured during setup:

  credential_<identity>          = <secret>
  device_id_<identity>           = <device id>
  application_service_<as id>    = <registration YAML, newlines inlined>

LabelQuery is the index over these labels. Runtime filters are exact-match
and ANDed, and LabelQuery.matches() applies the same rule in memory.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import yaml

from .models import ApplicationService, Instance

MANAGED_LABEL = "commander.managed"
MANAGED_VALUE = "true"
NAMESPACE_LABEL = "commander.namespace"
BLUEPRINT_LABEL = "commander.blueprint"
INSTANCE_LABEL = "commander.instance"
CONTEXT_LABEL = "commander.context"

CREDENTIAL_PREFIX = "credential_"
DEVICE_ID_PREFIX = "device_id_"
APP_SERVICE_PREFIX = "application_service_"

# Committed images live here; cleanup only touches images tagged under it.
LOCAL_REPOSITORY = "localhost/commander"


# ── Query ─────────────────────────────────────────────────

@dataclass(frozen=True)
class LabelQuery:
    """Exact-match AND query over (ownership, namespace, blueprint, instance)."""
    namespace: Optional[str] = None
    blueprint: Optional[str] = None
    instance: Optional[str] = None
    managed: bool = True

    def as_labels(self) -> Dict[str, str]:
        labels = {}
        if self.managed:
            labels[MANAGED_LABEL] = MANAGED_VALUE
        if self.namespace is not None:
            labels[NAMESPACE_LABEL] = self.namespace
        if self.blueprint is not None:
            labels[BLUEPRINT_LABEL] = self.blueprint
        if self.instance is not None:
            labels[INSTANCE_LABEL] = self.instance
        return labels

    def to_filters(self) -> Dict[str, List[str]]:
        return {"label": [f"{k}={v}" for k, v in self.as_labels().items()]}

    def matches(self, labels: Optional[Dict[str, str]]) -> bool:
        labels = labels or {}
        return all(labels.get(k) == v for k, v in self.as_labels().items())


def context_label(namespace: str, blueprint: str, instance: str) -> str:
    return f"{namespace}.{blueprint}.{instance}"


def resource_labels(
    namespace: str,
    blueprint: Optional[str] = None,
    instance: Optional[str] = None,
) -> Dict[str, str]:
    """Labels for a resource we are about to create."""
    labels = LabelQuery(namespace=namespace, blueprint=blueprint, instance=instance).as_labels()
    if blueprint is not None and instance is not None:
        labels[CONTEXT_LABEL] = context_label(namespace, blueprint, instance)
    return labels


# ── Image Naming ──────────────────────────────────────────

def image_reference(namespace: str, blueprint: str, instance: str) -> Tuple[str, str]:
    """(repository, tag) of the committed image for one instance."""
    return LOCAL_REPOSITORY, context_label(namespace, blueprint, instance)


def is_local_image(repo_tags: Iterable[str]) -> bool:
    """
    True unless some tag lives outside LOCAL_REPOSITORY.
    An image pulled or re-tagged from elsewhere must never be garbage collected.
    """
    return all(tag.startswith(LOCAL_REPOSITORY) for tag in repo_tags or [])


# ── Captured State → Labels ───────────────────────────────

def credential_labels(credentials: Dict[str, str], keep_for: Sequence[str]) -> Dict[str, str]:
    """Only identities in keep_for are kept; an empty keep_for keeps all."""
    if keep_for:
        kept = {ident: credentials[ident] for ident in keep_for if ident in credentials}
    else:
        kept = dict(credentials)
    return {CREDENTIAL_PREFIX + ident: secret for ident, secret in kept.items()}


def device_id_labels(device_ids: Dict[str, str]) -> Dict[str, str]:
    return {DEVICE_ID_PREFIX + ident: dev for ident, dev in device_ids.items()}


def app_service_registration(svc: ApplicationService) -> str:
    """
    Registration YAML for an application service.
    Labels can't be multiline, so newlines are inlined as a literal '\\n'.
    """
    registration = {
        "id": svc.id,
        "hs_token": svc.hs_token,
        "as_token": svc.as_token,
        "url": svc.url,
        "sender_localpart": svc.sender_localpart,
        "rate_limited": svc.rate_limited,
        "de.sorunome.msc2409.push_ephemeral": svc.send_ephemeral,
        "push_ephemeral": svc.send_ephemeral,
        "org.matrix.msc3202": svc.enable_encryption,
        "namespaces": {
            "users": [{"exclusive": False, "regex": ".*"}],
            "rooms": [],
            "aliases": [],
        },
    }
    text = yaml.safe_dump(registration, default_flow_style=False, sort_keys=False)
    return text.replace("\n", "\\n")


def app_service_labels(instance: Instance) -> Dict[str, str]:
    return {
        APP_SERVICE_PREFIX + svc.id: app_service_registration(svc)
        for svc in instance.application_services
    }


# ── Labels → Captured State ───────────────────────────────

def _strip_prefix(labels: Optional[Dict[str, str]], prefix: str) -> Dict[str, str]:
    return {
        key[len(prefix):]: value
        for key, value in (labels or {}).items()
        if key.startswith(prefix)
    }


def credentials_from_labels(labels: Optional[Dict[str, str]]) -> Dict[str, str]:
    return _strip_prefix(labels, CREDENTIAL_PREFIX)


def device_ids_from_labels(labels: Optional[Dict[str, str]]) -> Dict[str, str]:
    return _strip_prefix(labels, DEVICE_ID_PREFIX)


def app_services_from_labels(labels: Optional[Dict[str, str]]) -> Dict[str, str]:
    """{as id: registration YAML} with the inlined newlines restored."""
    return {
        as_id: registration.replace("\\n", "\n")
        for as_id, registration in _strip_prefix(labels, APP_SERVICE_PREFIX).items()
    }


# ── Commit Changes ────────────────────────────────────────

def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("$", "\\$")
    return f'"{escaped}"'


def to_changes(labels: Dict[str, str]) -> List[str]:
    """Labels as Dockerfile LABEL directives for a container commit."""
    return [f"LABEL {_quote(k)}={_quote(v)}" for k, v in labels.items()]

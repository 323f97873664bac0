"""
Unit Tests: Resource Labels
===========================
LabelQuery filters, local image rule, captured-state labels and the
LABEL change directives used at commit time.
"""

import yaml

from blueprint_commander.labels import (
    BLUEPRINT_LABEL,
    CONTEXT_LABEL,
    MANAGED_LABEL,
    NAMESPACE_LABEL,
    LabelQuery,
    app_service_labels,
    app_services_from_labels,
    credential_labels,
    credentials_from_labels,
    device_id_labels,
    image_reference,
    is_local_image,
    resource_labels,
    to_changes,
)
from blueprint_commander.models import ApplicationService, Instance


class TestLabelQuery:

    def test_filters_are_exact_key_value_pairs(self):
        q = LabelQuery(namespace="pkg", blueprint="bp")
        assert q.to_filters() == {"label": [
            f"{MANAGED_LABEL}=true",
            f"{NAMESPACE_LABEL}=pkg",
            f"{BLUEPRINT_LABEL}=bp",
        ]}

    def test_matches_requires_every_label(self):
        q = LabelQuery(namespace="pkg", blueprint="bp")
        labels = resource_labels("pkg", "bp", "hs1")
        assert q.matches(labels)
        assert not q.matches(resource_labels("pkg", "other", "hs1"))
        assert not q.matches(resource_labels("other", "bp", "hs1"))
        assert not q.matches({NAMESPACE_LABEL: "pkg", BLUEPRINT_LABEL: "bp"})
        assert not q.matches(None)

    def test_resource_labels_carry_context_for_instances(self):
        labels = resource_labels("pkg", "bp", "hs1")
        assert labels[CONTEXT_LABEL] == "pkg.bp.hs1"
        assert CONTEXT_LABEL not in resource_labels("pkg", "bp")


class TestLocalImages:

    def test_image_reference(self):
        assert image_reference("pkg", "bp", "hs1") == ("localhost/commander", "pkg.bp.hs1")

    def test_all_local_tags(self):
        assert is_local_image(["localhost/commander:pkg.bp.hs1"])

    def test_untagged_image_counts_as_local(self):
        assert is_local_image([])

    def test_any_foreign_tag_makes_image_foreign(self):
        assert not is_local_image(["localhost/commander:pkg.bp.hs1", "ghcr.io/acme/snapshot:1"])


class TestCapturedState:

    def test_allow_list_keeps_only_listed(self):
        creds = {"@alice:x": "tok_a", "@bob:x": "tok_b"}
        assert credential_labels(creds, ["@alice:x"]) == {"credential_@alice:x": "tok_a"}

    def test_empty_allow_list_keeps_all(self):
        creds = {"@alice:x": "tok_a", "@bob:x": "tok_b"}
        labels = credential_labels(creds, [])
        assert labels == {"credential_@alice:x": "tok_a", "credential_@bob:x": "tok_b"}
        assert credentials_from_labels(labels) == creds

    def test_allow_list_ignores_uncaptured_identities(self):
        assert credential_labels({"@alice:x": "a"}, ["@carol:x"]) == {}

    def test_device_ids(self):
        assert device_id_labels({"@alice:x": "DEV1"}) == {"device_id_@alice:x": "DEV1"}

    def test_app_service_registration_is_single_line_yaml(self):
        svc = ApplicationService(
            id="bridge", hs_token="hs_tok", as_token="as_tok",
            url="http://host.docker.internal:9000", sender_localpart="bot",
            send_ephemeral=True,
        )
        labels = app_service_labels(Instance(name="hs1", application_services=[svc]))
        value = labels["application_service_bridge"]
        assert "\n" not in value

        restored = app_services_from_labels(labels)["bridge"]
        doc = yaml.safe_load(restored)
        assert doc["id"] == "bridge"
        assert doc["url"] == "http://host.docker.internal:9000"
        assert doc["push_ephemeral"] is True
        assert doc["org.matrix.msc3202"] is False
        assert doc["namespaces"]["users"] == [{"exclusive": False, "regex": ".*"}]


class TestChanges:

    def test_label_directive(self):
        assert to_changes({"credential_@alice:x": "tok"}) == ['LABEL "credential_@alice:x"="tok"']

    def test_quotes_and_dollars_escaped(self):
        [change] = to_changes({"k": 'a"b$c'})
        assert change == 'LABEL "k"="a\\"b\\$c"'

    def test_inlined_newlines_survive(self):
        [change] = to_changes({"k": "line1\\nline2"})
        assert change == 'LABEL "k"="line1\\\\nline2"'

import copy

import pytest
from ruamel.yaml import YAML

from kubemend.healing.reorganizer import ChangeType, StructureReorganizer, get_in, reorganize_document


def deployment(**spec):
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": "web"},
        "spec": {
            "selector": {"matchLabels": {"app": "web"}},
            "template": {"metadata": {"labels": {"app": "web"}}, "spec": {}},
            **spec,
        },
    }


CONTAINERS = [{"name": "web", "image": "nginx"}]


def test_missing_kind_is_reported_not_raised():
    result = reorganize_document({"metadata": {"name": "x"}})
    assert result.is_valid is False
    assert result.errors == ['Document has no "kind" field']
    assert result.changes == []


def test_containers_under_spec_move_to_pod_template():
    doc = deployment(containers=copy.deepcopy(CONTAINERS))
    result = reorganize_document(doc)

    assert "containers" not in result.document["spec"]
    assert get_in(result.document, "spec.template.spec.containers") == CONTAINERS
    relocations = [c for c in result.changes if c.type == ChangeType.RELOCATE]
    assert len(relocations) == 1
    assert relocations[0].source_path == "spec.containers"
    assert relocations[0].path == "spec.template.spec.containers"
    assert relocations[0].confidence == 0.85
    assert result.is_valid


def test_input_document_is_not_mutated():
    doc = deployment(containers=copy.deepcopy(CONTAINERS))
    snapshot = copy.deepcopy(doc)
    reorganize_document(doc)
    assert doc == snapshot


def test_root_level_fields_follow_the_relocation_table():
    doc = {"apiVersion": "v1", "kind": "Service", "metadata": {}, "name": "svc",
           "ports": [{"port": 80}], "labels": {"tier": "web"}}
    result = reorganize_document(doc)

    assert result.document["metadata"] == {"name": "svc", "labels": {"tier": "web"}}
    assert result.document["spec"]["ports"] == [{"port": 80}]
    assert "name" not in result.document
    assert all(c.confidence == 0.80 for c in result.changes if c.type == ChangeType.RELOCATE)


def test_cronjob_uses_the_job_template_path():
    doc = {"apiVersion": "batch/v1", "kind": "CronJob", "metadata": {"name": "nightly"},
           "spec": {"schedule": "0 0 * * *", "containers": copy.deepcopy(CONTAINERS)}}
    result = reorganize_document(doc)
    assert get_in(result.document, "spec.jobTemplate.spec.template.spec.containers") == CONTAINERS
    assert "containers" not in result.document["spec"]


def test_relocation_merges_objects_favoring_existing():
    doc = {"apiVersion": "v1", "kind": "ConfigMap",
           "metadata": {"name": "cfg", "labels": {"app": "keep"}},
           "labels": {"app": "discard", "tier": "web"}}
    result = reorganize_document(doc)
    assert result.document["metadata"]["labels"] == {"app": "keep", "tier": "web"}
    assert result.changes[0].type == ChangeType.MERGE


def test_relocation_concatenates_arrays():
    existing = [{"name": "sidecar", "image": "envoy"}]
    doc = deployment(containers=copy.deepcopy(CONTAINERS))
    doc["spec"]["template"]["spec"]["containers"] = copy.deepcopy(existing)
    result = reorganize_document(doc)
    assert get_in(result.document, "spec.template.spec.containers") == existing + CONTAINERS


def test_identical_duplicate_is_removed():
    doc = {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": "cfg"}, "name": "cfg"}
    result = reorganize_document(doc)
    assert "name" not in result.document
    assert [c.type for c in result.changes] == [ChangeType.REMOVE]


def test_conflicting_scalar_stays_in_place():
    doc = {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": "cfg"}, "name": "other"}
    result = reorganize_document(doc)
    assert result.document["name"] == "other"
    assert result.document["metadata"]["name"] == "cfg"
    assert result.changes == []


def test_required_structure_is_created():
    doc = {"apiVersion": "apps/v1", "kind": "Deployment", "spec": {"replicas": 1}}
    result = reorganize_document(doc)

    created = {c.path: c.confidence for c in result.changes if c.type == ChangeType.CREATE}
    assert created["metadata"] == 1.0
    assert created["spec.template"] == 0.95
    assert created["spec.template.spec"] == 0.95
    assert created["spec.selector"] == 0.95
    assert result.document["metadata"] == {}
    assert result.is_valid


def test_missing_api_version_is_an_error():
    result = reorganize_document({"kind": "ConfigMap", "metadata": {"name": "x"}})
    assert result.is_valid is False
    assert result.errors == ["Missing required field: apiVersion"]


def test_well_formed_document_has_no_changes():
    result = reorganize_document(deployment())
    assert result.changes == []


def test_round_trip_maps_keep_comments_and_order():
    yaml = YAML()
    doc = yaml.load(
        "apiVersion: v1\n"
        "kind: Pod\n"
        "metadata:\n"
        "  name: p  # the name\n"
        "containers:\n"
        "- name: c\n"
        "  image: busybox\n"
    )
    result = StructureReorganizer().reorganize(doc)
    assert list(result.document) == ["apiVersion", "kind", "metadata", "spec"]
    assert type(result.document["spec"]) is type(doc)
    assert result.document["spec"]["containers"][0]["image"] == "busybox"


@pytest.mark.parametrize("path,expected", [
    ("spec.template.spec", {}),
    ("spec.missing", None),
    ("metadata.name.deeper", None),
])
def test_get_in(path, expected):
    assert get_in(deployment(), path) == expected


def test_metadata_created_by_relocation_follows_kind():
    doc = YAML().load("kind: Deployment\nspec: {}\nname: x\n")
    result = reorganize_document(doc)
    assert list(result.document) == ["kind", "metadata", "spec"]
    assert result.document["metadata"]["name"] == "x"

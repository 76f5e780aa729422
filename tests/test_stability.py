import pytest
from pathlib import Path
from kubemend.healing.pipeline import MultiPassFixer
from ruamel.yaml import YAML

# Standardized K8s samples
VALID_K8S_SAMPLES = [
    "apiVersion: v1\nkind: Pod\nmetadata:\n  name: nginx\nspec:\n  containers:\n  - name: nginx\n    image: nginx",
    "apiVersion: v1\nkind: Service\nmetadata:\n  name: svc\nspec:\n  ports:\n  - port: 80\n    targetPort: 8080",
    "apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: cfg\ndata:\n  conf: |\n    line1\n    line2",
    "apiVersion: rbac.authorization.k8s.io/v1\nkind: Role\nmetadata:\n  name: pod-reader\nrules:\n- apiGroups: ['']\n  resources: ['pods']\n  verbs: ['get', 'watch', 'list']",
    "apiVersion: apps/v1\nkind: Deployment\nmetadata:\n  name: dep\nspec:\n  selector:\n    matchLabels:\n      app: web\n  template:\n    metadata:\n      labels:\n        app: web\n    spec:\n      containers:\n      - name: web\n        image: web:latest",
]


def _load(text):
    yaml_parser = YAML(typ='safe')
    return [d for d in yaml_parser.load_all(text) if d is not None]


@pytest.mark.parametrize("original_yaml", VALID_K8S_SAMPLES)
def test_stability_regression(original_yaml):
    """
    STABILITY TEST: Ensures that valid K8s patterns are
    never corrupted by the repair pipeline.
    """
    result = MultiPassFixer().fix(original_yaml)

    # 1. Core Assertion: It must be valid and untouched
    assert result.is_valid is True
    assert result.changes == []
    assert result.confidence == 1.0

    # 2. DATA INTEGRITY: The actual K8s objects must match
    assert _load(original_yaml) == _load(result.content), "CRITICAL: Fixer altered valid K8s data!"


@pytest.mark.parametrize("original_yaml", VALID_K8S_SAMPLES)
def test_every_pass_reports_a_metric(original_yaml):
    result = MultiPassFixer().fix(original_yaml)
    assert [m.pass_number for m in result.pass_breakdown] == [1, 2, 3, 4, 5]
    assert all(m.changes_count == 0 for m in result.pass_breakdown)


def test_multi_document_stream_is_preserved():
    stream = "---\n".join(sample + "\n" for sample in VALID_K8S_SAMPLES[:3])
    result = MultiPassFixer().fix(stream)
    assert result.is_valid
    assert _load(stream) == _load(result.content)


FIXTURES = Path(__file__).parent / "fixtures"


@pytest.mark.parametrize("manifest", sorted((FIXTURES / "valid_manifests").glob("*.yaml")), ids=lambda p: p.name)
def test_valid_fixtures_are_left_alone(manifest):
    text = manifest.read_text()
    result = MultiPassFixer().fix(text)
    assert result.is_valid is True
    assert result.changes == []
    assert _load(text) == _load(result.content)


@pytest.mark.parametrize("manifest", sorted((FIXTURES / "broken_manifests").glob("*.yaml")), ids=lambda p: p.name)
def test_broken_fixtures_heal_in_one_run(manifest):
    """
    A healed manifest is valid and a second run finds nothing left to do.
    """
    fixer = MultiPassFixer()
    first = fixer.fix(manifest.read_text())
    assert first.is_valid is True
    assert first.changes

    second = fixer.fix(first.content)
    assert second.changes == []
    assert _load(second.content) == _load(first.content)

import pytest

from kubemend.core.models import ChangeCategory, FixerOptions, Severity
from kubemend.healing.coercer import SemanticCoercer, locate_key_line, looks_numeric_by_name


def coerce(text, **options):
    return SemanticCoercer(FixerOptions(**options)).run(text)


def test_quoted_replicas_become_integer():
    text, changes = coerce('spec:\n  replicas: "3"')
    assert text == "spec:\n  replicas: 3"
    change = changes[0]
    assert change.line == 2
    assert change.code == "COERCE_NUMBER"
    assert change.category == ChangeCategory.TYPE
    assert change.confidence >= 0.9


def test_word_numeral_becomes_integer():
    text, changes = coerce("replicas: three")
    assert text == "replicas: 3"
    assert changes[0].confidence == 0.85


def test_fractional_replicas_are_floored():
    text, changes = coerce("replicas: 2.5")
    assert text == "replicas: 2"
    assert changes[0].confidence == 0.75


@pytest.mark.parametrize("line,fixed", [
    ("hostNetwork: yes", "hostNetwork: true"),
    ("privileged: 'off'", "privileged: false"),
    ("readOnly: enabled", "readOnly: true"),
])
def test_boolean_fields(line, fixed):
    text, changes = coerce(line)
    assert text == fixed
    assert changes[0].code == "COERCE_BOOLEAN"


@pytest.mark.parametrize("line", [
    "replicas: 3",
    "hostNetwork: true",
    "replicas: *count",
    "replicas: many",
    "containerPort: 99999",
    "name: web",
    "image: nginx:1.25",
])
def test_lines_left_alone(line):
    text, changes = coerce(line)
    assert text == line
    assert changes == []


def test_trailing_comment_survives():
    text, _ = coerce("replicas: '3'  # keep")
    assert text == "replicas: 3  # keep"


def test_list_item_fields_are_coerced():
    text, _ = coerce('ports:\n- containerPort: "8080"\n  protocol: TCP')
    assert text == "ports:\n- containerPort: 8080\n  protocol: TCP"


def test_inline_value_on_structural_field_is_removed():
    text, changes = coerce("containers: nginx\n  - name: web")
    assert text.split("\n")[0] == "containers:"
    change = changes[0]
    assert change.code == "INLINE_STRUCTURE"
    assert change.severity == Severity.ERROR
    assert change.confidence == 0.80


@pytest.mark.parametrize("text", [
    "labels: foo\nkind: x",
    "labels: {a: b}\n  x: y",
    "args: [a, b]\n  x: y",
])
def test_inline_structure_needs_deeper_children(text):
    assert coerce(text)[1] == []


def test_numeric_inference_is_aggressive_only():
    source = "maxRetryCount: '5'\nwaitSeconds: ten\nretryMode: '5'"
    assert coerce(source)[1] == []

    text, changes = coerce(source, aggressive=True)
    assert text == "maxRetryCount: 5\nwaitSeconds: 10\nretryMode: '5'"
    assert [c.confidence for c in changes] == [0.88, 0.85]
    assert all(c.code == "NUMERIC_INFERENCE" for c in changes)


def test_duplicate_key_is_removed_with_its_block():
    source = "metadata:\n  name: a\n  labels:\n    x: y\n  labels:\n    z: w\n  namespace: ns"
    text, changes = coerce(source)
    assert text == "metadata:\n  name: a\n  labels:\n    x: y\n  namespace: ns"
    assert len(changes) == 1
    assert changes[0].line == 5
    assert changes[0].code == "DUPLICATE_KEY"
    assert changes[0].category == ChangeCategory.SEMANTIC


@pytest.mark.parametrize("source", [
    "containers:\n- name: a\n  image: x\n- name: b\n  image: y",
    "kind: A\n---\nkind: B",
    "metadata:\n  name: a\nspec:\n  name: b",
])
def test_same_key_in_different_scopes_is_kept(source):
    text, changes = coerce(source)
    assert text == source
    assert changes == []


def test_block_scalar_bodies_are_not_coerced():
    source = 'script: |\n  replicas: "3"\n  replicas: "4"'
    assert coerce(source) == (source, [])


def test_locate_key_line():
    entry = locate_key_line(4, "  - name: web  # x")
    assert entry.key == "name"
    assert entry.value == "web"
    assert entry.column == 4
    assert entry.raw[entry.colon] == ":"
    assert locate_key_line(0, "kind:Pod") is None
    assert locate_key_line(0, 'name: "open') is None


@pytest.mark.parametrize("name,expected", [
    ("retryCount", True), ("maxSurgePort", True), ("waitSeconds", True), ("image", False),
])
def test_looks_numeric_by_name(name, expected):
    assert looks_numeric_by_name(name) is expected

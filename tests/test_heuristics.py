import pytest

from kubemend.core.models import ChangeCategory, FixerOptions, Severity
from kubemend.healing.heuristics import (
    BareKeyHeuristic, ColonSpaceHeuristic, HandlerConflictSweep, KeyTypoHeuristic, LineContext,
    MissingColonHeuristic, SyntaxNormalizer, TabIndentHeuristic, UnclosedQuoteHeuristic, block_scalar_lines,
    is_structural_line,
)


def normalize(text, **options):
    return SyntaxNormalizer(FixerOptions(**options)).run(text)


def context_for(lines, index, **options):
    return LineContext(index=index, lines=lines, fixed=lines[:index], options=FixerOptions(**options))


def test_missing_colons_on_known_keys():
    text, changes = normalize("apiVersion v1\nkind Pod\nmetadata\n  name test")
    assert text == "apiVersion: v1\nkind: Pod\nmetadata:\n  name: test"
    assert [c.code for c in changes] == ["MISSING_COLON"] * 4
    assert [c.line for c in changes] == [1, 2, 3, 4]


def test_unknown_key_scores_lower():
    _, changes = normalize("customThing enabled")
    assert changes[0].fixed == "customThing: enabled"
    assert changes[0].confidence == 0.85


def test_sentence_is_not_a_key():
    _, changes = normalize("description: >\n  This is prose\nThe end")
    assert changes == []


def test_plain_scalar_continuation_is_left_alone():
    lines = ["command: run this", "  and continue"]
    assert MissingColonHeuristic().apply(lines[1], context_for(lines, 1)) is None


def test_list_item_missing_colon_needs_known_key_unless_aggressive():
    lines = ["containers:", "- name web", "- foo bar"]
    heuristic = MissingColonHeuristic()
    assert heuristic.apply(lines[1], context_for(lines, 1)).fixed == "- name: web"
    assert heuristic.apply(lines[2], context_for(lines, 2)) is None
    assert heuristic.apply(lines[2], context_for(lines, 2, aggressive=True)).fixed == "- foo: bar"


def test_tabs_become_spaces():
    lines = ["\tname: x"]
    change = TabIndentHeuristic().apply(lines[0], context_for(lines, 0))
    assert change.fixed == "  name: x"


def test_odd_indent_rounds_up():
    text, changes = normalize("metadata:\n   name: x")
    assert text == "metadata:\n    name: x"
    assert changes[0].code == "ODD_INDENT"


def test_list_dash_spacing():
    text, _ = normalize("args:\n  -run\n  --flag\n  -1")
    assert text == "args:\n  - run\n  --flag\n  -1"


@pytest.mark.parametrize("line,fixed", [
    ("kind:Pod", "kind: Pod"),
    ("  - name:web", "  - name: web"),
    ("url: http://example.com", None),
    ("image:nginx http://x", None),
    ("time: 12:30", None),
])
def test_colon_space(line, fixed):
    change = ColonSpaceHeuristic().apply(line, context_for([line], 0))
    assert (change.fixed if change else None) == fixed


def test_unclosed_double_quote():
    text, changes = normalize('metadata:\n  name: "test\nspec: {}')
    assert text == 'metadata:\n  name: "test"\nspec: {}'
    assert changes[0].code == "UNCLOSED_QUOTE"
    assert changes[0].confidence == 0.94


def test_unclosed_single_quote_scores_lower():
    _, changes = normalize("name: 'test")
    assert changes[0].fixed == "name: 'test'"
    assert changes[0].confidence == 0.80


def test_multiline_flow_scalar_is_not_closed():
    lines = ['message: "first', '  second"']
    assert UnclosedQuoteHeuristic().apply(lines[0], context_for(lines, 0)) is None


def test_balanced_quotes_untouched():
    lines = ['message: "say \\"hi\\""']
    assert UnclosedQuoteHeuristic().apply(lines[0], context_for(lines, 0)) is None


@pytest.mark.parametrize("line,fixed", [
    ("sepc:", "spec:"),
    ("  contianers:", "  containers:"),
    ("  - imge: nginx", "  - image: nginx"),
    ("spec:", None),
])
def test_key_typo(line, fixed):
    change = KeyTypoHeuristic().apply(line, context_for([line], 0))
    assert (change.fixed if change else None) == fixed


def test_bare_key_needs_children():
    lines = ["spec", "  replicas: 1", "orphan"]
    heuristic = BareKeyHeuristic()
    assert heuristic.apply(lines[0], context_for(lines, 0)).fixed == "spec:"
    assert heuristic.apply(lines[2], context_for(lines, 2)) is None


def test_bare_key_before_list_at_same_depth():
    lines = ["contianers", "- name: web"]
    change = BareKeyHeuristic().apply(lines[0], context_for(lines, 0))
    assert change.fixed == "containers:"


def test_bare_key_also_corrects_typo():
    text, changes = normalize("sepc\n  replicas: 2")
    assert text == "spec:\n  replicas: 2"
    assert len(changes) == 1


def test_block_scalar_bodies_are_protected():
    source = "script: |\n  echo hello world\n  value:thing\nname: x"
    text, changes = normalize(source)
    assert text == source
    assert changes == []


def test_block_scalar_lines():
    lines = ["data:", "  conf: |-", "    a b", "", "    c:d", "  other: x"]
    assert block_scalar_lines(lines) == {2, 3, 4}


def test_standalone_block_indicator_is_protected():
    lines = ["script:", " |", "  echo hi", "   value thing", "name: x"]
    assert block_scalar_lines(lines) == {1, 2, 3}


def test_standalone_block_indicator_survives_normalization():
    text, changes = normalize("script:\n |\n  echo hi\nname x")
    assert text == "script:\n |\n  echo hi\nname: x"
    assert [c.line for c in changes] == [4]


@pytest.mark.parametrize("line,expected", [
    ("---", True), ("--- !tag", True), ("...", True), ("# note", True), ("   ", True),
    ("key: value", False), ("- item", False),
])
def test_is_structural_line(line, expected):
    assert is_structural_line(line) is expected


def test_document_markers_are_never_rewritten():
    text, changes = normalize("---\nkind Pod\n---\nkind Service")
    assert text == "---\nkind: Pod\n---\nkind: Service"
    assert len(changes) == 2


def test_annotation_keys_get_their_colon():
    text, changes = normalize(
        "metadata:\n  annotations:\n"
        "    service.beta.kubernetes.io/aws-load-balancer-type nlb\n"
        "    example.com/owner team-a")
    assert text.split("\n")[2:] == [
        "    service.beta.kubernetes.io/aws-load-balancer-type: nlb",
        "    example.com/owner: team-a",
    ]
    assert [c.code for c in changes] == ["MISSING_COLON"] * 2
    assert [c.confidence for c in changes] == [0.93, 0.93]


def test_dotted_words_outside_string_maps_are_left_alone():
    _, changes = normalize("spec:\n  v1.2 released")
    assert changes == []


def test_env_item_gets_a_name():
    text, changes = normalize(
        'env:\n- MY_VAR\n  value: "1"\n- OTHER\n  valueFrom:\n    fieldRef:\n      fieldPath: metadata.name')
    assert text == ('env:\n- name: MY_VAR\n  value: "1"\n- name: OTHER\n  valueFrom:\n'
                    '    fieldRef:\n      fieldPath: metadata.name')
    assert [c.code for c in changes] == ["ENV_ITEM_NAME"] * 2
    assert changes[0].category == ChangeCategory.STRUCTURE
    assert changes[0].confidence == 0.92


def test_plain_uppercase_list_items_stay_scalars():
    _, changes = normalize("args:\n- VERBOSE\n- QUIET")
    assert changes == []


def test_conflicting_handler_without_children_is_removed():
    text, changes = normalize(
        "lifecycle:\n  postStart:\n    tcpSocket:\n    httpGet:\n      path: /warm\n      port: 8080\n"
        "  preStop:\n    exec:\n      command: [sleep, '5']")
    assert text == ("lifecycle:\n  postStart:\n    httpGet:\n      path: /warm\n      port: 8080\n"
                    "  preStop:\n    exec:\n      command: [sleep, '5']")
    assert len(changes) == 1
    change = changes[0]
    assert change.code == "CONFLICTING_HANDLER"
    assert change.line == 3
    assert change.original == "    tcpSocket:"
    assert change.confidence == 0.88
    assert change.severity == Severity.WARNING
    assert change.reason == 'Removed conflicting handler "tcpSocket" (keeping "httpGet")'


def test_conflicting_handler_takes_its_body_along():
    lines, changes = HandlerConflictSweep().run(
        ["postStart:", "  httpGet:", "    path: /a", "  exec:", "    command: [true]"])
    assert lines == ["postStart:", "  exec:", "    command: [true]"]
    assert [c.line for c in changes] == [2]


def test_single_handler_is_left_alone():
    lines = ["postStart:", "  exec:", "    command: [true]", "preStop:", "  httpGet:", "    path: /b"]
    assert HandlerConflictSweep().run(lines) == (lines, [])

import pytest
from ruamel.yaml import YAML

from kubemend.healing.structurer import LinePatch, ManifestStructurer, ParseFailure, ParseFailureKind

UNDER_INDENTED = "apiVersion: v1\nkind: ConfigMap\nmetadata:\n    name: cfg\n  namespace: default\n"


@pytest.fixture
def structurer():
    return ManifestStructurer()


def test_valid_text_parses(structurer):
    docs, failure = structurer.try_parse("a: 1\n---\nb: 2\n")
    assert failure is None
    assert [dict(d) for d in docs] == [{"a": 1}, {"b": 2}]
    assert structurer.is_valid("a: 1")


def test_empty_documents_are_kept_as_none(structurer):
    assert structurer.load_documents("---\n---\na: 1\n") == [None, {"a": 1}]


def test_unterminated_quote_is_classified(structurer):
    _, failure = structurer.try_parse('a: "open\nb: 2\n')
    assert failure.kind == ParseFailureKind.UNTERMINATED_QUOTE
    assert failure.line == 1
    assert failure.column == 3


def test_under_indented_line_is_classified(structurer):
    _, failure = structurer.try_parse(UNDER_INDENTED)
    assert failure.kind == ParseFailureKind.UNEXPECTED_INDENT
    assert failure.line == 5
    assert failure.describe().startswith("Line 5, column 3:")


def test_reindent_to_sibling_depth(structurer):
    _, failure = structurer.try_parse(UNDER_INDENTED)
    text, patch = structurer.repair(UNDER_INDENTED, failure)
    assert patch == LinePatch(5, "  namespace: default", "    namespace: default",
                              "Re-indented line to match its parent block")
    assert structurer.is_valid(text)


def test_reindent_to_parent_plus_step(structurer):
    text = "spec:\n  template:\n containers: []\n"
    failure = ParseFailure(ParseFailureKind.UNEXPECTED_INDENT, 3, 1, "expected <block end>")
    repaired, patch = structurer.repair(text, failure)
    assert patch.fixed == "    containers: []"
    assert repaired == "spec:\n  template:\n    containers: []\n"


def test_close_quote_repair(structurer):
    source = 'a: "open\nb: 2\n'
    _, failure = structurer.try_parse(source)
    text, patch = structurer.repair(source, failure)
    assert text == 'a: "open"\nb: 2\n'
    assert patch.line == 1
    assert structurer.is_valid(text)


def test_space_after_colon_repair(structurer):
    failure = ParseFailure(ParseFailureKind.MISSING_SPACE_AFTER_COLON, 2, 6, "mapping values are not allowed here")
    text, patch = structurer.repair("spec:\n  - name:web\n", failure)
    assert text == "spec:\n  - name: web\n"
    assert patch.reason == "Added space after colon reported by the parser"


@pytest.mark.parametrize("failure", [
    ParseFailure(ParseFailureKind.UNKNOWN, 1, 0, "??"),
    ParseFailure(ParseFailureKind.UNEXPECTED_INDENT, 0, 0, "no position"),
    ParseFailure(ParseFailureKind.UNEXPECTED_INDENT, 99, 0, "past the end"),
    ParseFailure(ParseFailureKind.UNEXPECTED_INDENT, 2, 0, "document marker"),
    ParseFailure(ParseFailureKind.MISSING_SPACE_AFTER_COLON, 1, 0, "nothing glued"),
])
def test_repair_declines_unsafe_patches(structurer, failure):
    text = "a: 1\n---\nb: 2\n"
    assert structurer.repair(text, failure) == (text, None)


def test_dump_keeps_kubernetes_indentation(structurer):
    docs = structurer.load_documents("kind: Pod\nspec:\n  containers:\n  - name: web\n    image: 'nginx'\n")
    text = structurer.dump_documents(docs + docs)
    assert "    - name: web\n" in text
    assert "image: 'nginx'" in text
    assert text.count("---\n") == 1
    assert len(list(YAML(typ="safe").load_all(text))) == 2


def test_describe_without_position():
    assert ParseFailure(ParseFailureKind.UNKNOWN, 0, 0, "boom").describe() == "boom"


def test_dump_restores_header_and_comment_only_documents(structurer):
    source = "# Copyright ACME\n---\nkind: Pod\nspec: {}\n---\n# placeholder\n---\nkind: Service\n"
    docs = structurer.load_documents(source)
    assert docs[1] is None
    text = structurer.dump_documents(docs, source=source)
    assert text.startswith("# Copyright ACME\n---\nkind: Pod\n")
    assert text.endswith("---\n# placeholder\n---\nkind: Service\n")
    assert text.count("# Copyright ACME") == 1


def test_dump_without_source_drops_empty_documents(structurer):
    assert structurer.dump_documents([None, {"a": 1}]) == "a: 1\n"


def test_dump_falls_back_when_layout_does_not_match(structurer):
    docs = structurer.load_documents("a: 1\n---\nb: 2\n")
    assert structurer.dump_documents(docs, source="a: 1\n") == "a: 1\n---\nb: 2\n"

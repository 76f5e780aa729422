import pytest

from kubemend.knowledge.dictionary import BUILDER_KEYS, FIXER_KEYS, looks_like_key
from kubemend.knowledge.types import (
    FieldType, TYPE_DEFINITIONS, coerce_value, get_default_value, get_enum_values, is_boolean_field,
    is_numeric_field, is_required_field, is_structural_field, is_valid_base64, matches_expected_type,
    validate_field_value, word_to_number,
)


@pytest.mark.parametrize("word,number", [
    ("three", 3),
    ("Twelve", 12),
    ("twenty-one", 21),
    ("three-hundred", 300),
    ("thousand", 1000),
    ("eleventy", None),
    ("twenty-twenty", None),
])
def test_word_to_number(word, number):
    assert word_to_number(word) == number


def test_unknown_field_passes_through():
    result = coerce_value("somethingCustom", "three")
    assert result.success
    assert result.value == "three"
    assert result.confidence == 1.0


def test_matching_type_is_untouched():
    result = coerce_value("replicas", 3)
    assert result.success and result.value == 3 and result.confidence == 1.0


@pytest.mark.parametrize("value,expected,confidence", [
    ('"3"', 3, 0.95),
    ("3", 3, 0.95),
    ("2.0", 2, 0.90),
    ("three", 3, 0.85),
    (True, 1, 0.70),
])
def test_numeric_coercion(value, expected, confidence):
    result = coerce_value("replicas", value)
    assert result.success
    assert result.value == expected
    assert isinstance(result.value, int)
    assert result.confidence == confidence
    assert result.target_type == FieldType.INTEGER


@pytest.mark.parametrize("value,expected,confidence", [
    (2.5, 2, 0.75),
    (4.0, 4, 0.90),
])
def test_float_in_integer_field_is_floored(value, expected, confidence):
    assert not matches_expected_type("replicas", value)
    result = coerce_value("replicas", value)
    assert result.success
    assert result.value == expected
    assert isinstance(result.value, int)
    assert result.confidence == confidence


def test_quoted_numeral_outranks_word_numeral():
    assert coerce_value("replicas", "3").confidence >= coerce_value("replicas", "three").confidence


@pytest.mark.parametrize("field,value", [
    ("replicas", "-1"),
    ("containerPort", "70000"),
    ("nodePort", "80"),
])
def test_numeric_bounds_reject(field, value):
    result = coerce_value(field, value)
    assert not result.success
    assert result.value == value
    assert result.reason


def test_numeric_garbage_rejects():
    result = coerce_value("replicas", "many")
    assert not result.success
    assert "Cannot convert" in result.reason


@pytest.mark.parametrize("value,expected", [
    ("yes", True), ("ON", True), ("'enabled'", True), ("1", True),
    ("no", False), ("Off", False), ('"inactive"', False), ("0", False),
])
def test_boolean_strings(value, expected):
    result = coerce_value("hostNetwork", value)
    assert result.success
    assert result.value is expected
    assert result.confidence == 0.90


def test_boolean_from_number():
    result = coerce_value("privileged", 2)
    assert result.success and result.value is True and result.confidence == 0.75


def test_string_coercion():
    assert coerce_value("image", None).value == ""
    assert coerce_value("image", None).confidence == 0.80
    assert coerce_value("image", 42).value == "42"
    assert coerce_value("image", False).value == "false"


def test_validate_field_value_coerces_confidently():
    result = validate_field_value("replicas", "3")
    assert result.valid
    assert result.coerced_value == 3
    assert result.confidence == 0.95


@pytest.mark.parametrize("field,value,fragment", [
    ("imagePullPolicy", "Sometimes", "must be one of"),
    ("name", "Bad_Name", "pattern"),
    ("containerPort", 70000, "above maximum"),
    ("replicas", -2, "below minimum"),
    ("replicas", "lots", "Expected integer"),
])
def test_validate_field_value_errors(field, value, fragment):
    result = validate_field_value(field, value)
    assert not result.valid
    assert any(fragment in error for error in result.errors)


def test_validate_field_value_accepts_good_values():
    assert validate_field_value("schedule", "0 * * * *").valid
    assert validate_field_value("mountPath", "/data").valid
    assert validate_field_value("unknownField", object()).valid


def test_registry_helpers():
    assert is_numeric_field("timeoutSeconds")
    assert is_boolean_field("readOnly")
    assert is_structural_field("containers")
    assert not is_structural_field("image")
    assert is_required_field("metadata")
    assert get_enum_values("restartPolicy") == ("Always", "OnFailure", "Never")
    assert get_default_value("replicas") == 1
    assert get_enum_values("nope") is None
    assert matches_expected_type("labels", {"a": "b"})
    assert not matches_expected_type("replicas", True)


def test_type_definitions_are_read_only():
    with pytest.raises(TypeError):
        TYPE_DEFINITIONS["replicas"] = None


@pytest.mark.parametrize("value,valid", [
    ("aGVsbG8=", True),
    ("aGVsbG8", False),
    ("not base64!", False),
    (42, False),
])
def test_is_valid_base64(value, valid):
    assert is_valid_base64(value) is valid


def test_key_dictionaries_share_an_interface():
    assert "containers" in BUILDER_KEYS
    assert FIXER_KEYS.correct_typo("sepc") == "spec"
    assert FIXER_KEYS.correct_typo("spec") is None
    assert BUILDER_KEYS.correct_typo("sepc") is None
    assert FIXER_KEYS.is_known("mountPath")
    assert not BUILDER_KEYS.is_known("mountPath")
    assert BUILDER_KEYS.is_key_candidate("customField")
    assert not BUILDER_KEYS.is_key_candidate("customField", permissive=False)


@pytest.mark.parametrize("token,expected", [
    ("name", True),
    ("my-key_2", True),
    ("2fast", False),
    ("x" * 31, False),
])
def test_looks_like_key(token, expected):
    assert looks_like_key(token) is expected

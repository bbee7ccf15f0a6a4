import pytest

from errors import MalformedInput
from records import build_record, parse_payload, storage_key, to_text


def test_storage_key():
    assert storage_key("42") == "user:42"


class TestParsePayload:
    def test_object(self):
        assert parse_payload(b'{"id": "42", "age": 3}') == {"id": "42", "age": 3}

    def test_invalid_json_carries_parser_message(self):
        with pytest.raises(MalformedInput, match="Invalid JSON"):
            parse_payload(b"not json")

    def test_empty_body(self):
        with pytest.raises(MalformedInput):
            parse_payload(b"")

    @pytest.mark.parametrize("raw", [b"[]", b'"id"', b"42", b"null"])
    def test_non_object(self, raw):
        with pytest.raises(MalformedInput):
            parse_payload(raw)


class TestToText:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("Ada", "Ada"),
            ("", ""),
            (True, "true"),
            (False, "false"),
            (0, "0"),
            (-17, "-17"),
            (1.5, "1.5"),
            (2.0, "2.0"),
            (None, "null"),
        ],
    )
    def test_scalars(self, value, expected):
        assert to_text(value) == expected

    def test_rejects_containers(self):
        with pytest.raises(TypeError):
            to_text({"a": 1})


class TestBuildRecord:
    def test_keeps_id_in_fields(self):
        user_id, fields = build_record({"id": "42", "name": "Ada", "age": 36})
        assert user_id == "42"
        assert fields == {"id": "42", "name": "Ada", "age": "36"}

    def test_missing_id(self):
        with pytest.raises(MalformedInput, match="'id' is required"):
            build_record({"name": "Ada"})

    @pytest.mark.parametrize("bad", [42, 4.2, True, None, ["42"], {"v": "42"}])
    def test_id_must_be_string(self, bad):
        with pytest.raises(MalformedInput, match="'id' must be a string"):
            build_record({"id": bad})

    def test_id_must_not_be_empty(self):
        with pytest.raises(MalformedInput, match="must not be empty"):
            build_record({"id": ""})

    @pytest.mark.parametrize("nested", [{"city": "London"}, ["a", "b"], []])
    def test_nested_values_rejected(self, nested):
        with pytest.raises(MalformedInput, match="field 'extra'"):
            build_record({"id": "1", "extra": nested})


class TestNonFiniteNumbers:
    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_rejected(self, value):
        with pytest.raises(MalformedInput, match="field 'score' must be a finite number"):
            build_record({"id": "1", "score": value})

    @pytest.mark.parametrize("literal", [b"NaN", b"Infinity", b"1e999"])
    def test_parsed_literals_rejected(self, literal):
        payload = parse_payload(b'{"id": "1", "score": ' + literal + b"}")
        with pytest.raises(MalformedInput, match="finite number"):
            build_record(payload)

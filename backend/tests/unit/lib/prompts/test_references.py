"""Unit tests for prompt reference parsing."""

from prompt_resolution.lib.prompts.models import PRODUCTION_LABEL
from prompt_resolution.lib.prompts.references import parse, parse_all, render_literal


class TestParse:
    """Tests for parse() / parse_all()."""

    def test_body_without_references_yields_nothing(self):
        assert parse_all("Hello there, no references here.") == []

    def test_empty_body(self):
        assert parse_all("") == []

    def test_bare_name_defaults_to_production_label(self):
        (ref,) = parse_all("Hi {{ref:farewell}}")
        assert ref.name == "farewell"
        assert ref.selector == PRODUCTION_LABEL
        assert ref.label == PRODUCTION_LABEL
        assert ref.version is None
        assert ref.is_valid

    def test_label_selector(self):
        (ref,) = parse_all("{{ref:farewell@staging}}")
        assert ref.label == "staging"
        assert ref.version is None

    def test_digit_selector_is_a_version(self):
        (ref,) = parse_all("{{ref:farewell@3}}")
        assert ref.version == 3
        assert ref.label is None

    def test_spans_cover_raw_text(self):
        body = "A {{ref:one}} B {{ref:two@2}} C"
        refs = parse_all(body)
        assert [r.name for r in refs] == ["one", "two"]
        for ref in refs:
            assert body[ref.start:ref.end] == ref.raw

    def test_references_are_returned_left_to_right(self):
        refs = parse_all("{{ref:b}}{{ref:a}}{{ref:c}}")
        assert [r.name for r in refs] == ["b", "a", "c"]
        assert refs[0].end == refs[1].start

    def test_whitespace_inside_reference_is_ignored(self):
        (ref,) = parse_all("{{ref: farewell @ 2 }}")
        assert ref.name == "farewell"
        assert ref.version == 2

    def test_folder_names_are_allowed(self):
        (ref,) = parse_all("{{ref:shared/tone.v2@production}}")
        assert ref.name == "shared/tone.v2"

    def test_escaped_reference_is_not_parsed(self):
        assert parse_all(r"Literal \{{ref:farewell}} here") == []

    def test_parse_is_lazy(self):
        refs = parse("{{ref:a}} {{ref:b}}")
        assert next(refs).name == "a"
        assert next(refs).name == "b"
        assert next(refs, None) is None


class TestMalformedReferences:
    """Malformed references come back with an error instead of raising."""

    def test_invalid_name(self):
        (ref,) = parse_all("{{ref:@3}}")
        assert not ref.is_valid
        assert "invalid reference syntax" in ref.error
        assert ref.name is None

    def test_empty_reference(self):
        (ref,) = parse_all("x {{ref:}} y")
        assert not ref.is_valid

    def test_unterminated_reference(self):
        body = "Start {{ref:farewell and never closed"
        (ref,) = parse_all(body)
        assert ref.error == "unterminated reference"
        assert ref.raw == "{{ref:"
        assert body[ref.start:ref.end] == ref.raw

    def test_unterminated_reference_does_not_swallow_the_next_one(self):
        refs = parse_all("{{ref:broken {{ref:ok}}")
        assert len(refs) == 2
        assert not refs[0].is_valid
        assert refs[1].is_valid
        assert refs[1].name == "ok"

    def test_describe_falls_back_to_raw_text(self):
        (ref,) = parse_all("{{ref:!!}}")
        assert ref.describe() == "{{ref:!!}}"


class TestRenderLiteral:
    """Tests for render_literal()."""

    def test_drops_escape_backslash(self):
        assert render_literal(r"a \{{ref:x}} b") == "a {{ref:x}} b"

    def test_leaves_other_text_alone(self):
        text = "back\\slash and {{ braces }}"
        assert render_literal(text) == text

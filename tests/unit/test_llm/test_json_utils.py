"""Unit tests for JSON parsing of model responses."""

from clerkbook.llm.json_utils import (
    extract_first_json_object,
    fix_escape_sequences,
    parse_json_object,
    strip_markdown_fences,
)


class TestStripMarkdownFences:
    """Tests for strip_markdown_fences."""

    def test_json_fence(self) -> None:
        """Fenced JSON is unwrapped."""
        assert strip_markdown_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_plain_text_unchanged(self) -> None:
        """Unfenced text is only stripped."""
        assert strip_markdown_fences('  {"a": 1}  ') == '{"a": 1}'


class TestExtractFirstJsonObject:
    """Tests for extract_first_json_object."""

    def test_surrounding_text(self) -> None:
        """The object is found inside prose."""
        assert extract_first_json_object('Here you go: {"a": 1} done') == '{"a": 1}'

    def test_braces_inside_strings(self) -> None:
        """Braces in string values do not end the object."""
        text = 'x {"quote": "a } b", "n": {"m": 1}} y'

        assert extract_first_json_object(text) == '{"quote": "a } b", "n": {"m": 1}}'

    def test_unbalanced(self) -> None:
        """An unterminated object yields None."""
        assert extract_first_json_object('{"a": 1') is None

    def test_no_object(self) -> None:
        """Text without braces yields None."""
        assert extract_first_json_object("no json here") is None


class TestParseJsonObject:
    """Tests for parse_json_object."""

    def test_plain_object(self) -> None:
        """A bare object parses."""
        assert parse_json_object('{"abstract": "x", "tags": ["a"]}') == {
            "abstract": "x",
            "tags": ["a"],
        }

    def test_fenced_object(self) -> None:
        """A fenced object parses."""
        assert parse_json_object('```json\n{"a": 1}\n```') == {"a": 1}

    def test_object_in_prose(self) -> None:
        """An object surrounded by prose parses."""
        assert parse_json_object('Sure! {"a": 1} Hope that helps.') == {"a": 1}

    def test_invalid_escapes_fixed(self) -> None:
        """Invalid backslash escapes are repaired."""
        assert parse_json_object('{"tag": "snake\\_case"}') == {"tag": "snake\\_case"}

    def test_array_rejected(self) -> None:
        """Top-level arrays are not objects."""
        assert parse_json_object('["a", "b"]') is None

    def test_garbage(self) -> None:
        """Unparseable text yields None."""
        assert parse_json_object("not json at all") is None


class TestFixEscapeSequences:
    """Tests for fix_escape_sequences."""

    def test_valid_escapes_kept(self) -> None:
        """Valid JSON escapes are untouched."""
        assert fix_escape_sequences('"a\\nb\\"c"') == '"a\\nb\\"c"'

    def test_invalid_escape_doubled(self) -> None:
        """Lone backslashes before other characters are doubled."""
        assert fix_escape_sequences("a\\_b") == "a\\\\_b"

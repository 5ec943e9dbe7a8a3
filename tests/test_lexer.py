"""
Tests for the lexer module (.env line parsing with multi-line values).
"""

import pytest
from ecolog.core.lexer import (
    ContinuationKind,
    Lexer,
    extract_line_parts,
    find_closing_quote,
    get_keys,
    parse_commented_variables,
    parse_content,
    parse_variables,
)


def only(variables):
    """Return the single parsed variable."""
    assert len(variables) == 1
    return next(iter(variables.values()))


class TestSingleLine:
    """Test single-line assignments."""

    def test_simple_assignment(self):
        """Simple KEY=value should parse with its position."""
        var = only(parse_variables(["KEY=value"]))

        assert var.key == "KEY"
        assert var.value == "value"
        assert var.quote_char is None
        assert var.start_line == var.end_line == 1
        assert var.eq_pos == 3
        assert not var.is_multi_line
        assert not var.has_newlines
        assert var.terminated

    def test_result_keyed_by_key_and_line(self):
        """Result keys should be KEY@start_line."""
        variables = parse_variables(["", "A=1", "B=2"])
        assert list(variables) == ["A@2", "B@3"]

    def test_double_quoted(self):
        var = only(parse_variables(['MESSAGE="hello world"']))
        assert var.value == "hello world"
        assert var.quote_char == '"'

    def test_single_quoted_keeps_other_quotes(self):
        """Differing quote characters inside a value should stay literal."""
        var = only(parse_variables(["GREETING='say \"hi\"'"]))
        assert var.value == 'say "hi"'
        assert var.quote_char == "'"

    def test_escaped_quote_does_not_close(self):
        """A backslash-escaped quote should not end the value."""
        var = only(parse_variables(['A="a\\"b"']))
        assert var.value == 'a\\"b'
        assert var.end_line == 1

    def test_comment_after_quoted_value(self):
        var = only(parse_variables(['A="x y" # note']))
        assert var.value == "x y"
        assert var.comment == "note"

    def test_inline_comment_unquoted(self):
        """Whitespace followed by # starts an inline comment."""
        var = only(parse_variables(["PORT=3000 # dev port"]))
        assert var.value == "3000"
        assert var.comment == "dev port"

    def test_hash_without_space_is_value(self):
        var = only(parse_variables(["URL=http://example.com/#frag"]))
        assert var.value == "http://example.com/#frag"
        assert var.comment is None

    def test_export_prefix(self):
        """A leading export should be dropped from the key."""
        var = only(parse_variables(["export API_KEY=abc"]))
        assert var.key == "API_KEY"
        assert var.eq_pos == len("export API_KEY")

    def test_whitespace_around_key_and_value(self):
        var = only(parse_variables(["  NAME =  value  "]))
        assert var.key == "NAME"
        assert var.value == "value"

    def test_empty_value(self):
        var = only(parse_variables(["EMPTY="]))
        assert var.value == ""


class TestSkippedLines:
    """Test lines that carry no assignment."""

    def test_blank_and_comments(self):
        variables = parse_variables(["", "   ", "# comment", "  # indented comment", "A=1"])
        assert list(variables) == ["A@5"]

    def test_empty_key(self):
        """A line with = but an empty key is not a variable."""
        assert parse_variables(["=value", "   =x"]) == {}

    def test_no_equals(self):
        assert parse_variables(["JUST_TEXT"]) == {}


class TestQuoteContinuation:
    """Test values spanning lines through an unterminated quote."""

    def test_two_lines(self):
        var = only(parse_variables(['TOKEN="abc', 'def"']))

        assert var.key == "TOKEN"
        assert var.value == "abc\ndef"
        assert var.quote_char == '"'
        assert (var.start_line, var.end_line) == (1, 2)
        assert var.is_multi_line
        assert var.has_newlines
        assert var.eq_pos == 5

    def test_comment_line_inside_continuation_is_content(self):
        """A # line inside an open value should be literal content."""
        var = only(parse_variables(['CERT="line1', '# not a comment', '', 'end"']))
        assert var.value == "line1\n# not a comment\n\nend"
        assert var.end_line == 4

    def test_following_variable_after_close(self):
        variables = parse_variables(['A="x', 'y" # done', 'B=2'])

        assert variables["A@1"].value == "x\ny"
        assert variables["A@1"].comment == "done"
        assert variables["B@3"].value == "2"

    def test_unterminated_at_eof(self):
        """An open value at end of input is kept and flagged unterminated."""
        variables = parse_variables(['A=1', 'B="open', 'more'])
        var = variables["B@2"]

        assert var.value == "open\nmore"
        assert var.end_line == 3
        assert not var.terminated
        assert variables["A@1"].terminated


class TestBackslashContinuation:
    """Test values continued with a trailing backslash."""

    def test_three_lines(self):
        var = only(parse_variables(["LIST=a\\", "b\\", "c"]))

        assert var.value == "a\nb\nc"
        assert (var.start_line, var.end_line) == (1, 3)
        assert var.quote_char is None
        assert var.is_multi_line

    def test_escaped_backslash_does_not_continue(self):
        """An even run of trailing backslashes is literal."""
        variables = parse_variables(["A=x\\\\", "B=1"])
        assert variables["A@1"].value == "x\\\\"
        assert "B@2" in variables

    def test_inline_comment_on_closing_line(self):
        """A trailing comment on the last line is not part of the value."""
        lines = ["A=foo\\", "bar # note"]
        var = only(parse_variables(lines))

        assert var.value == "foo\nbar"
        assert var.comment == "note"
        assert get_keys(parse_variables(lines)) == {"A": "foo\nbar"}


class TestNewlineFlags:
    """Test is_multi_line and has_newlines as separate conditions."""

    def test_escaped_newline_on_one_line(self):
        """A backslash-n escape is two characters, not a line break."""
        var = only(parse_variables(['K="a\\nb"']))

        assert var.value == "a\\nb"
        assert not var.is_multi_line
        assert not var.has_newlines

    def test_spanning_value_with_escaped_newline(self):
        """Only the joined line break counts as a newline."""
        var = only(parse_variables(['T="a\\nb', 'c"']))

        assert var.value == "a\\nb\nc"
        assert var.is_multi_line
        assert var.has_newlines
        assert var.value.count("\n") == 1


class TestDuplicates:
    """Test keys assigned more than once."""

    def test_both_occurrences_kept(self):
        variables = parse_variables(["KEY=1", "OTHER=x", "KEY=2"])
        assert variables["KEY@1"].value == "1"
        assert variables["KEY@3"].value == "2"

    def test_get_keys_last_wins(self):
        variables = parse_variables(["KEY=1", "KEY=2"])
        assert get_keys(variables) == {"KEY": "2"}

    def test_duplicate_key_during_continuation(self):
        """A later occurrence should not be confused with an open one."""
        variables = parse_variables(['KEY="a', 'KEY=b"', 'KEY=c'])
        assert variables["KEY@1"].value == "a\nKEY=b"
        assert variables["KEY@3"].value == "c"


class TestCommentedVariables:
    """Test assignments inside comment lines."""

    def test_commented_assignment(self):
        lines = ["# API_KEY=secret", "# just a comment", "#not a key=1", "REAL=1"]
        variables = parse_commented_variables(lines)
        var = only(variables)

        assert var.key == "API_KEY"
        assert var.value == "secret"
        assert var.is_comment
        assert var.eq_pos == lines[0].find("=")

    def test_regular_parse_ignores_comments(self):
        variables = parse_variables(["# API_KEY=secret"])
        assert variables == {}


class TestHelpers:
    """Test lower-level helpers."""

    def test_find_closing_quote(self):
        assert find_closing_quote('abc"', '"') == 3
        assert find_closing_quote('a\\"b"', '"') == 4
        assert find_closing_quote('a\\\\"', '"') == 3
        assert find_closing_quote("abc", '"') == -1

    def test_extract_line_parts_opens_quote_continuation(self):
        key, value, comment, quote, state = extract_line_parts('A="start')

        assert key is None and value is None
        assert quote == '"'
        assert state.active
        assert state.kind == ContinuationKind.QUOTE
        assert state.parts == ["start"]

    def test_extract_line_parts_complete(self):
        key, value, comment, quote, state = extract_line_parts("A=1 # c")
        assert (key, value, comment, quote) == ("A", "1", "c", None)
        assert not state.active

    def test_parse_content(self):
        variables = parse_content("A=1\nB='two'\n")
        assert get_keys(variables) == {"A": "1", "B": "two"}

    def test_content_hash_recorded(self):
        var = only(parse_variables(["A=1"], content_hash="h1"))
        assert var.content_hash == "h1"

    def test_pure(self):
        """Parsing identical lines twice should give equal results."""
        lines = ['A="x', 'y"', "B=2"]
        assert parse_variables(lines) == parse_variables(list(lines))

    def test_lexer_interns_keys(self):
        from ecolog.core.hashing import StringInterner

        interner = StringInterner()
        first = Lexer(["KEY=1"], interner=interner).tokenize()
        second = Lexer(["KEY=2"], interner=interner).tokenize()

        assert first["KEY@1"].key is second["KEY@1"].key

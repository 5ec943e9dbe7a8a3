"""
Tests for the masking module (mask arithmetic and multi-line distribution).
"""

import pytest
from ecolog.core.errors import MaskPolicyError
from ecolog.core.lexer import parse_variables
from ecolog.core.masking import (
    MaskPolicy,
    PartialMode,
    build_masks,
    coerce_partial_mode,
    compute_mask,
    mask_value,
    revealed_slices,
    span_is_revealed,
    value_segments,
)


FULL = MaskPolicy()
PARTIAL = MaskPolicy(partial_mode=PartialMode())


def variable(lines, key):
    """Find the first parsed variable with the given key."""
    for var in parse_variables(lines).values():
        if var.key == key:
            return var
    raise AssertionError(f"{key} not parsed")


class TestPolicy:
    """Test policy construction and validation."""

    @pytest.mark.parametrize("mask_char", ["", "**", None])
    def test_mask_char_single_character(self, mask_char):
        with pytest.raises(MaskPolicyError):
            MaskPolicy(mask_char=mask_char)

    @pytest.mark.parametrize("length", [0, -3, True, 2.5])
    def test_fixed_length_positive_int(self, length):
        with pytest.raises(MaskPolicyError):
            MaskPolicy(fixed_mask_length=length)

    def test_partial_mode_non_negative(self):
        with pytest.raises(MaskPolicyError):
            PartialMode(show_start=-1)

    def test_from_config_true_uses_defaults(self):
        policy = MaskPolicy.from_config("#", True, 12)

        assert policy.mask_char == "#"
        assert policy.partial_mode == PartialMode(3, 3, 3)
        assert policy.fixed_mask_length == 12

    def test_from_config_mapping(self):
        policy = MaskPolicy.from_config(partial_mode={"show_start": 2, "show_end": 1})
        assert policy.partial_mode == PartialMode(2, 1, 3)

    def test_from_config_off(self):
        assert MaskPolicy.from_config(partial_mode=False).partial_mode is None
        assert coerce_partial_mode(None) is None

    def test_from_config_rejects_unknown(self):
        with pytest.raises(MaskPolicyError):
            MaskPolicy.from_config(partial_mode={"show_start": 2, "reveal": 1})
        with pytest.raises(MaskPolicyError):
            MaskPolicy.from_config(partial_mode="yes")

    def test_fingerprint_distinguishes_policies(self):
        assert FULL.fingerprint != PARTIAL.fingerprint
        assert FULL.fingerprint != MaskPolicy(fixed_mask_length=8).fingerprint
        assert FULL.fingerprint == MaskPolicy().fingerprint


class TestFullMasking:
    """Test full masking of single-line values."""

    def test_length_preserved(self):
        value = "my-super-secret-key"
        assert compute_mask(value, FULL) == "*" * len(value)

    def test_empty_value(self):
        assert compute_mask("", FULL) == ""

    def test_custom_char(self):
        assert compute_mask("abc", MaskPolicy(mask_char="#")) == "###"

    def test_fixed_length_pads_short_value(self):
        """A fixed length longer than the value hides the real length."""
        assert compute_mask("abc", MaskPolicy(fixed_mask_length=10)) == "*" * 10

    def test_fixed_length_truncates_long_value(self):
        assert compute_mask("a" * 16, MaskPolicy(fixed_mask_length=10)) == "*" * 10

    def test_explicit_length_overrides_policy(self):
        assert compute_mask("abcdef", MaskPolicy(fixed_mask_length=10), mask_length=4) == "****"


class TestPartialMasking:
    """Test partial reveal arithmetic."""

    def test_reveals_start_and_end(self):
        assert compute_mask("mysecretkey", PARTIAL) == "mys*****key"

    def test_short_value_falls_back_to_full(self):
        """6 < show_start + show_end + min_mask, so everything is masked."""
        assert compute_mask("secret", PARTIAL) == "******"

    def test_exactly_minimum(self):
        """9 characters leave exactly min_mask in the middle."""
        assert compute_mask("abcdefghi", PARTIAL) == "abc***ghi"

    def test_show_end_zero(self):
        policy = MaskPolicy(partial_mode=PartialMode(show_start=2, show_end=0))
        assert compute_mask("abcdefghij", policy) == "ab********"

    def test_disabled_when_nothing_shown(self):
        policy = MaskPolicy(partial_mode=PartialMode(show_start=0, show_end=0))
        assert compute_mask("abcdefghij", policy) == "*" * 10

    def test_fixed_length_keeps_min_mask(self):
        """A small fixed length still masks at least min_mask characters."""
        policy = MaskPolicy(partial_mode=PartialMode(), fixed_mask_length=8)
        assert compute_mask("mysecretkey", policy) == "mys***key"

    def test_fixed_length_pads(self):
        policy = MaskPolicy(partial_mode=PartialMode(), fixed_mask_length=20)
        masked = compute_mask("mysecretkey", policy)

        assert masked == "mys*****key" + "*" * 9
        assert len(masked) == 20

    def test_short_value_with_fixed_length(self):
        policy = MaskPolicy(partial_mode=PartialMode(), fixed_mask_length=4)
        assert compute_mask("secret", policy) == "****"


class TestMaskValue:
    """Test whole-value masking."""

    def test_quote_wrapping(self):
        assert mask_value("secret", FULL, '"') == '"******"'
        assert mask_value("secret", FULL) == "******"

    def test_newlines_dropped(self):
        assert mask_value("abc\ndef", FULL) == "******"


class TestSingleLineMasks:
    """Test overlays for single-line values."""

    def test_jwt_secret(self):
        lines = ["JWT_SECRET=my-super-secret-key"]
        masks = build_masks(variable(lines, "JWT_SECRET"), lines, FULL)

        assert len(masks) == 1
        assert masks[0].line == 1
        assert masks[0].column == len("JWT_SECRET=")
        assert masks[0].text == "*" * len("my-super-secret-key")

    def test_quoted_value_keeps_quotes(self):
        lines = ['A="secret" # comment']
        masks = build_masks(variable(lines, "A"), lines, FULL)

        assert masks[0].column == 2
        assert masks[0].text == '"******"'

    def test_leading_space_kept(self):
        lines = ["A=  value"]
        masks = build_masks(variable(lines, "A"), lines, FULL)
        assert masks[0].text == "  *****"

    def test_empty_values_produce_nothing(self):
        for lines in (["A="], ['A=""']):
            assert build_masks(variable(lines, "A"), lines, FULL) == []

    def test_stale_lines_produce_nothing(self):
        """When the lines no longer match the variable, nothing is masked."""
        var = variable(["KEY=value"], "KEY")
        assert build_masks(var, ["KEYS value"], FULL) == []
        assert value_segments(var, []) == []


class TestMultiLineMasks:
    """Test distribution of a mask across a multi-line span."""

    LINES = ["# header", "", 'CERT="aaaa', "bbbbbb", 'cc"', "AFTER=1"]

    def test_token_two_lines(self):
        """Each line's overlay has the width of the text it covers."""
        lines = ['TOKEN="abc', 'def"']
        masks = build_masks(variable(lines, "TOKEN"), lines, FULL)

        assert [(m.line, m.column, m.text) for m in masks] == [
            (1, 6, '"***'),
            (2, 0, '***"'),
        ]
        assert len(masks[0].text) == len(lines[0]) - len("TOKEN=")
        assert len(masks[1].text) == len(lines[1])

    @pytest.mark.parametrize("policy", [
        FULL,
        PARTIAL,
        MaskPolicy(mask_char="#"),
        MaskPolicy(fixed_mask_length=5),
        MaskPolicy(fixed_mask_length=20),
        MaskPolicy(partial_mode=PartialMode(1, 1, 1), fixed_mask_length=7),
    ])
    def test_conservation(self, policy):
        """Masked content across lines 3-5 has the raw content's width."""
        var = variable(self.LINES, "CERT")
        masks = build_masks(var, self.LINES, policy)

        assert [m.line for m in masks] == [3, 4, 5]
        assert masks[0].text.startswith('"')
        assert masks[-1].text.endswith('"')

        content = masks[0].text[1:] + masks[1].text + masks[2].text[:-1]
        assert len(content) == len("aaaa" + "bbbbbb" + "cc")

    def test_interior_lines_full_masked(self):
        masks = build_masks(variable(self.LINES, "CERT"), self.LINES, FULL)
        assert masks[1].text == "******"
        assert masks[1].column == 0

    def test_backslash_continuation(self):
        lines = ["KEY=abc\\", "def"]
        masks = build_masks(variable(lines, "KEY"), lines, FULL)

        assert [m.text for m in masks] == ["****", "***"]

    def test_backslash_closing_line_comment_visible(self):
        """A comment after the last continued line is left unmasked."""
        lines = ["KEY=abc\\", "def # note"]
        masks = build_masks(variable(lines, "KEY"), lines, FULL)

        assert [(m.line, m.column, m.text) for m in masks] == [
            (1, 4, "****"),
            (2, 0, "***"),
        ]

    def test_unterminated_value_still_masked(self):
        lines = ['A="open', "more"]
        masks = build_masks(variable(lines, "A"), lines, FULL)

        assert [m.text for m in masks] == ['"****', "****"]


class TestEscapedNewlines:
    """Test that the line span, not the value content, selects the masking path."""

    def test_single_line_with_escaped_newline(self):
        lines = ['K="a\\nb"']
        masks = build_masks(variable(lines, "K"), lines, FULL)

        assert [(m.line, m.column, m.text) for m in masks] == [(1, 2, '"****"')]

    def test_spanning_value_with_escaped_newline(self):
        lines = ['T="a\\nb', 'c"']
        masks = build_masks(variable(lines, "T"), lines, FULL)

        assert [(m.line, m.column, m.text) for m in masks] == [
            (1, 2, '"****'),
            (2, 0, '*"'),
        ]

    def test_mask_value_counts_escape_characters(self):
        assert mask_value("a\\nb", FULL) == "****"
        assert mask_value("a\\nb\nc", FULL) == "*****"


class TestReveal:
    """Test revealed spans."""

    LINES = ["A=1", "", 'CERT="aaaa', "bbbbbb", 'cc"']

    def test_span_is_revealed(self):
        var = variable(self.LINES, "CERT")

        assert span_is_revealed(var, lambda n: n == 4)
        assert not span_is_revealed(var, lambda n: n == 1)
        assert not span_is_revealed(var, None)

    def test_revealed_slices(self):
        """Original text after '=' on the first line, whole lines after."""
        var = variable(self.LINES, "CERT")
        assert revealed_slices(var, self.LINES) == {
            3: '"aaaa',
            4: "bbbbbb",
            5: 'cc"',
        }

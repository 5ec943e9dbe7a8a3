"""
Mask generation for parsed .env values.

Computes the literal replacement text that hides a value, honoring
partial-reveal rules and an optional fixed mask length, and spreads the mask
of a multi-line value back over the physical lines it spans so that every
line's overlay has the same width as the text it covers.
"""

from dataclasses import dataclass, fields, replace
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Union

from .errors import MaskPolicyError
from .lexer import ParsedVariable, find_closing_quote, split_inline_comment


@dataclass(frozen=True)
class PartialMode:
    """Reveal show_start leading and show_end trailing characters."""
    show_start: int = 3
    show_end: int = 3
    min_mask: int = 3

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise MaskPolicyError(f"partial_mode.{f.name} must be a non-negative integer, got {value!r}")

    @property
    def enabled(self) -> bool:
        return self.show_start > 0 or self.show_end > 0


PartialModeSetting = Union[None, bool, Mapping[str, int], PartialMode]


@dataclass(frozen=True)
class MaskPolicy:
    """
    How values are masked.

    Attributes:
        mask_char: Single display character used for masking
        partial_mode: Partial reveal settings, None for full masking
        fixed_mask_length: Constant mask width that hides the real length
    """
    mask_char: str = "*"
    partial_mode: Optional[PartialMode] = None
    fixed_mask_length: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.mask_char, str) or len(self.mask_char) != 1:
            raise MaskPolicyError(f"mask_char must be a single character, got {self.mask_char!r}")
        if self.partial_mode is not None and not isinstance(self.partial_mode, PartialMode):
            raise MaskPolicyError(f"partial_mode must be a PartialMode, got {type(self.partial_mode).__name__}")
        length = self.fixed_mask_length
        if length is not None and (not isinstance(length, int) or isinstance(length, bool) or length <= 0):
            raise MaskPolicyError(f"fixed_mask_length must be a positive integer, got {length!r}")

    @classmethod
    def from_config(
        cls,
        mask_char: str = "*",
        partial_mode: PartialModeSetting = None,
        mask_length: Optional[int] = None,
    ) -> "MaskPolicy":
        """
        Build a policy from configuration values.

        partial_mode accepts False/None (off), True (defaults), a mapping
        with show_start/show_end/min_mask, or a PartialMode.
        """
        return cls(
            mask_char=mask_char,
            partial_mode=coerce_partial_mode(partial_mode),
            fixed_mask_length=mask_length,
        )

    @property
    def fingerprint(self) -> str:
        """Stable text form used in cache keys."""
        partial = self.partial_mode
        partial_part = "off" if partial is None else f"{partial.show_start},{partial.show_end},{partial.min_mask}"
        return f"{self.mask_char}|{partial_part}|{self.fixed_mask_length or 'auto'}"

    def without_fixed_length(self) -> "MaskPolicy":
        return replace(self, fixed_mask_length=None)


def coerce_partial_mode(setting: PartialModeSetting) -> Optional[PartialMode]:
    if setting is None or setting is False:
        return None
    if setting is True:
        return PartialMode()
    if isinstance(setting, PartialMode):
        return setting
    if isinstance(setting, Mapping):
        known = {f.name for f in fields(PartialMode)}
        unknown = set(setting) - known
        if unknown:
            raise MaskPolicyError(f"Unknown partial_mode options: {', '.join(sorted(unknown))}")
        return PartialMode(**setting)
    raise MaskPolicyError(f"Unsupported partial_mode setting: {setting!r}")


@dataclass(frozen=True)
class Segment:
    """
    The part of one physical line covered by a value's overlay.

    prefix and suffix (leading whitespace, quotes) stay literal; content is
    what gets masked.
    """
    line: int  # 1-based
    column: int  # 0-based
    prefix: str
    content: str
    suffix: str = ""


@dataclass(frozen=True)
class MaskedLine:
    """Replacement text for one line, drawn starting at column."""
    line: int  # 1-based
    column: int  # 0-based
    text: str
    width: Optional[int] = None  # buffer characters covered, defaults to len(text)


def compute_mask(value: str, policy: MaskPolicy, mask_length: Optional[int] = None) -> str:
    """
    Mask a single-line value.

    Args:
        value: Value with quotes already stripped
        policy: Masking policy
        mask_length: Fixed mask width, defaults to policy.fixed_mask_length

    Returns:
        Masked text; longer than value when a fixed length exceeds it
    """
    if mask_length is None:
        mask_length = policy.fixed_mask_length

    length = len(value)
    if length == 0:
        return ""

    char = policy.mask_char
    partial = policy.partial_mode

    if partial is not None and partial.enabled:
        show_start, show_end, min_mask = partial.show_start, partial.show_end, partial.min_mask
        revealed = show_start + show_end

        if length <= revealed or length < revealed + min_mask:
            masked = char * min(mask_length or length, length)
        else:
            if mask_length:
                available = mask_length - revealed
            else:
                available = length - revealed
            middle = max(min_mask, min(available, length - revealed))
            tail = value[length - show_end:] if show_end else ""
            masked = value[:show_start] + char * middle + tail
    else:
        masked = char * min(mask_length or length, length)

    if mask_length and mask_length > length:
        masked += char * (mask_length - length)

    return masked


def mask_value(value: str, policy: MaskPolicy, quote_char: Optional[str] = None) -> str:
    """
    Mask a whole value for display outside the buffer (completion items,
    hover text, picker entries). Embedded newlines are dropped first.
    """
    masked = compute_mask(value.replace("\n", ""), policy)
    if quote_char:
        return f"{quote_char}{masked}{quote_char}"
    return masked


def value_segments(variable: ParsedVariable, lines: Sequence[str]) -> List[Segment]:
    """
    Locate the value of a variable in the buffer lines.

    Returns:
        One Segment per physical line of the value span, or an empty list
        when the lines no longer match the variable
    """
    start, end = variable.start_line, variable.end_line
    if start < 1 or end < start or end > len(lines):
        return []

    first = lines[start - 1]
    eq_pos = variable.eq_pos
    if eq_pos < 0 or eq_pos >= len(first) or first[eq_pos] != "=":
        return []

    after = first[eq_pos + 1:]
    leading = after[:len(after) - len(after.lstrip())]
    quote = variable.quote_char or ""
    column = eq_pos + 1
    body = after[len(leading) + len(quote):]

    if start == end:
        if not quote:
            return [Segment(start, column, leading, variable.value)]
        close = find_closing_quote(body, quote) if variable.terminated else -1
        if close == -1:
            return [Segment(start, column, leading + quote, body)]
        return [Segment(start, column, leading + quote, body[:close], quote)]

    segments = [Segment(start, column, leading + quote, body)]
    for line_no in range(start + 1, end):
        segments.append(Segment(line_no, 0, "", lines[line_no - 1]))

    last = lines[end - 1]
    if not quote and variable.terminated:
        # a trailing comment on the closing line stays visible
        segments.append(Segment(end, 0, "", split_inline_comment(last)[0]))
        return segments

    close = find_closing_quote(last, quote) if quote and variable.terminated else -1
    if close == -1:
        segments.append(Segment(end, 0, "", last))
    else:
        segments.append(Segment(end, 0, "", last[:close], quote))

    return segments


def _fit(mask: str, width: int, char: str) -> str:
    if len(mask) >= width:
        return mask[:width]
    return mask + char * (width - len(mask))


def build_masks(
    variable: ParsedVariable,
    lines: Sequence[str],
    policy: MaskPolicy,
    mask_length: Optional[int] = None,
) -> List[MaskedLine]:
    """
    Compute the overlay text for every line of a variable's value.

    A single-line value is masked on its own and re-wrapped in its quotes.
    A multi-line value is masked as one string over the raw content of its
    span, then split back by each line's raw content width; the first line
    keeps its opening quote and the last line its closing quote.

    Args:
        variable: Parsed variable
        lines: Buffer lines the variable was parsed from
        policy: Masking policy
        mask_length: Fixed mask width, defaults to policy.fixed_mask_length

    Returns:
        MaskedLine entries in line order; empty when nothing is to be masked
    """
    if mask_length is None:
        mask_length = policy.fixed_mask_length

    segments = value_segments(variable, lines)
    if not segments:
        return []

    if len(segments) == 1:
        segment = segments[0]
        if not segment.content:
            return []
        masked = compute_mask(segment.content, policy, mask_length)
        width = len(segment.prefix) + len(segment.content) + len(segment.suffix)
        return [MaskedLine(segment.line, segment.column, segment.prefix + masked + segment.suffix, width)]

    raw = "".join(segment.content for segment in segments)
    width = len(raw)
    if width == 0:
        return []

    if mask_length:
        masked = _fit(compute_mask(raw, policy, mask_length), width, policy.mask_char)
    else:
        masked = compute_mask(raw, policy.without_fixed_length())

    result = []
    offset = 0
    for segment in segments:
        size = len(segment.content)
        text = segment.prefix + masked[offset:offset + size] + segment.suffix
        offset += size
        if text:
            result.append(MaskedLine(segment.line, segment.column, text))

    return result


def span_is_revealed(variable: ParsedVariable, is_line_revealed: Optional[Callable[[int], bool]]) -> bool:
    """True when any line of the variable's span is marked revealed."""
    if is_line_revealed is None:
        return False
    return any(is_line_revealed(line_no) for line_no in range(variable.start_line, variable.end_line + 1))


def revealed_slices(variable: ParsedVariable, lines: Sequence[str]) -> Dict[int, str]:
    """
    Original text for a revealed span: everything after '=' on the first
    line and whole lines after that.
    """
    result: Dict[int, str] = {}
    for line_no in range(variable.start_line, variable.end_line + 1):
        if line_no > len(lines):
            break
        line = lines[line_no - 1]
        if line_no == variable.start_line:
            eq_pos = variable.eq_pos
            if 0 <= eq_pos < len(line) and line[eq_pos] == "=":
                result[line_no] = line[eq_pos + 1:]
            else:
                result[line_no] = line
        else:
            result[line_no] = line
    return result

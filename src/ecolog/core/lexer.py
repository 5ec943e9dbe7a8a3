"""
Line-oriented .env parser with multi-line continuation support.

Turns raw buffer lines into ParsedVariable records. A value may continue
over several physical lines, either through an unterminated quote or a
trailing backslash. Parsing is a single pass with no backtracking outside
the current continuation, so it is cheap enough to run on every buffer
update.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from .hashing import StringInterner, fast_hash


QUOTE_CHARS = ('"', "'")
EXPORT_PREFIX = "export "

_INLINE_COMMENT = re.compile(r"\s+#")
_COMMENTED_KEY = re.compile(r"^[A-Za-z_][A-Za-z0-9_.\-]*$")


class ContinuationKind(Enum):
    """How a multi-line value continues onto the next line."""
    QUOTE = "quote"
    BACKSLASH = "backslash"


@dataclass
class ContinuationState:
    """Parser state carried between lines while a value is still open."""
    active: bool = False
    key: Optional[str] = None
    kind: Optional[ContinuationKind] = None
    quote_char: Optional[str] = None
    start_line: Optional[int] = None
    eq_pos: Optional[int] = None
    parts: List[str] = field(default_factory=list)

    def joined(self) -> str:
        return "\n".join(self.parts)


@dataclass
class ParsedVariable:
    """One logical assignment found in a buffer."""
    key: str
    value: str
    quote_char: Optional[str]
    start_line: int  # 1-based, inclusive
    end_line: int
    eq_pos: int  # 0-based column of '=' on start_line
    is_multi_line: bool
    has_newlines: bool
    content_hash: Optional[str] = None
    comment: Optional[str] = None
    is_comment: bool = False
    terminated: bool = True

    @property
    def identity(self) -> str:
        """Key disambiguated by its start line."""
        return variable_id(self.key, self.start_line)

    def __repr__(self):
        span = f"{self.start_line}" if self.start_line == self.end_line else f"{self.start_line}-{self.end_line}"
        return f"ParsedVariable({self.key}, lines={span})"


LineParts = Tuple[Optional[str], Optional[str], Optional[str], Optional[str], ContinuationState]


def variable_id(key: str, start_line: int) -> str:
    return f"{key}@{start_line}"


def find_closing_quote(text: str, quote_char: str, start: int = 0) -> int:
    """
    Find the first quote character not escaped by a backslash.

    Args:
        text: Text to scan
        quote_char: Quote character to look for
        start: Index to start scanning from

    Returns:
        Index of the closing quote, or -1 if there is none
    """
    backslashes = 0
    for i in range(start, len(text)):
        char = text[i]
        if char == "\\":
            backslashes += 1
            continue
        if char == quote_char and backslashes % 2 == 0:
            return i
        backslashes = 0
    return -1


def _ends_with_continuation(text: str) -> bool:
    """True when text ends with an odd run of backslashes."""
    count = len(text) - len(text.rstrip("\\"))
    return count % 2 == 1


def _trailing_comment(text: str) -> Optional[str]:
    """Comment text following a closed quote, with or without '#'."""
    stripped = text.strip()
    if not stripped:
        return None
    return stripped.lstrip("#").strip() or None


def split_inline_comment(text: str) -> Tuple[str, Optional[str]]:
    """Split unquoted text into (value, comment) at whitespace followed by '#'."""
    match = _INLINE_COMMENT.search(text)
    if not match:
        return text.rstrip(), None
    return text[:match.start()].rstrip(), text[match.end():].strip() or None


def is_skippable(line: str) -> bool:
    """Blank lines and comment lines carry no assignment."""
    stripped = line.lstrip()
    return not stripped or stripped.startswith("#")


def extract_line_parts(line: str, state: Optional[ContinuationState] = None) -> LineParts:
    """
    Extract the parts of one physical line.

    Args:
        line: Raw line text (without line terminator)
        state: Continuation state from the previous line, if any

    Returns:
        Tuple of (key, value, comment, quote_char, state). key and value are
        both set only when an assignment completes on this line; the returned
        state is active while the value is still open.
    """
    if state is not None and state.active:
        return _continue_value(line, state)

    if is_skippable(line):
        return None, None, None, None, ContinuationState()

    eq_index = line.find("=")
    if eq_index == -1:
        return None, None, None, None, ContinuationState()

    key = line[:eq_index].strip()
    if key.startswith(EXPORT_PREFIX):
        key = key[len(EXPORT_PREFIX):].strip()
    if not key:
        return None, None, None, None, ContinuationState()

    value_text = line[eq_index + 1:].lstrip()

    if value_text[:1] in QUOTE_CHARS:
        quote = value_text[0]
        close = find_closing_quote(value_text, quote, 1)
        if close == -1:
            opened = ContinuationState(
                active=True,
                key=key,
                kind=ContinuationKind.QUOTE,
                quote_char=quote,
                eq_pos=eq_index,
                parts=[value_text[1:]],
            )
            return None, None, None, quote, opened

        comment = _trailing_comment(value_text[close + 1:])
        return key, value_text[1:close], comment, quote, ContinuationState()

    value, comment = split_inline_comment(value_text)
    if _ends_with_continuation(value):
        opened = ContinuationState(
            active=True,
            key=key,
            kind=ContinuationKind.BACKSLASH,
            eq_pos=eq_index,
            parts=[value[:-1]],
        )
        return None, None, None, None, opened

    return key, value, comment, None, ContinuationState()


def _continue_value(line: str, state: ContinuationState) -> LineParts:
    if state.kind == ContinuationKind.QUOTE:
        close = find_closing_quote(line, state.quote_char)
        if close == -1:
            state.parts.append(line)
            return None, None, None, state.quote_char, state

        state.parts.append(line[:close])
        comment = _trailing_comment(line[close + 1:])
        return state.key, state.joined(), comment, state.quote_char, ContinuationState()

    value, comment = split_inline_comment(line)
    if _ends_with_continuation(value):
        state.parts.append(value[:-1])
        return None, None, None, None, state

    state.parts.append(value)
    return state.key, state.joined(), comment, None, ContinuationState()


class Lexer:
    """
    Parser for a snapshot of buffer lines.

    Blank lines and comments are skipped unless a continuation is open, in
    which case they are literal value content. A continuation still open at
    the end of the input is emitted with terminated=False so its content can
    still be masked.
    """

    def __init__(
        self,
        lines: Sequence[str],
        content_hash: Optional[str] = None,
        interner: Optional[StringInterner] = None,
    ):
        self.lines = list(lines)
        self.content_hash = content_hash if content_hash is not None else fast_hash(self.lines)
        self.interner = interner

    def _intern(self, value: Optional[str]) -> Optional[str]:
        if self.interner is None:
            return value
        return self.interner.intern(value)

    def _make_variable(
        self,
        key: str,
        value: str,
        quote_char: Optional[str],
        start_line: int,
        end_line: int,
        eq_pos: int,
        comment: Optional[str] = None,
        is_comment: bool = False,
        terminated: bool = True,
    ) -> ParsedVariable:
        return ParsedVariable(
            key=self._intern(key),
            value=value,
            quote_char=self._intern(quote_char),
            start_line=start_line,
            end_line=end_line,
            eq_pos=eq_pos,
            is_multi_line=start_line < end_line,
            has_newlines="\n" in value,
            content_hash=self.content_hash,
            comment=comment,
            is_comment=is_comment,
            terminated=terminated,
        )

    def tokenize(self) -> Dict[str, ParsedVariable]:
        """
        Parse all lines.

        Returns:
            Mapping of "KEY@start_line" to ParsedVariable, in file order
        """
        variables: Dict[str, ParsedVariable] = {}
        state = ContinuationState()

        for line_no, line in enumerate(self.lines, start=1):
            if not state.active and is_skippable(line):
                continue

            was_active = state.active
            key, value, comment, quote_char, new_state = extract_line_parts(line, state)

            if new_state.active and not was_active:
                new_state.start_line = line_no

            if key is not None and value is not None:
                if was_active:
                    start_line, eq_pos = state.start_line, state.eq_pos
                else:
                    start_line, eq_pos = line_no, line.find("=")

                variable = self._make_variable(
                    key, value, quote_char, start_line, line_no, eq_pos, comment=comment
                )
                variables[variable.identity] = variable

            state = new_state

        if state.active and state.key:
            variable = self._make_variable(
                state.key,
                state.joined(),
                state.quote_char,
                state.start_line,
                len(self.lines),
                state.eq_pos,
                terminated=False,
            )
            variables[variable.identity] = variable

        return variables

    def tokenize_comments(self) -> Dict[str, ParsedVariable]:
        """
        Parse single-line assignments that were commented out, such as
        "# API_KEY=secret".
        """
        variables: Dict[str, ParsedVariable] = {}

        for line_no, line in enumerate(self.lines, start=1):
            stripped = line.lstrip()
            if not stripped.startswith("#"):
                continue

            body = stripped[1:]
            key, value, comment, quote_char, state = extract_line_parts(body)
            if key is None or value is None or state.active:
                continue
            if not _COMMENTED_KEY.match(key):
                continue

            offset = len(line) - len(body)
            variable = self._make_variable(
                key,
                value,
                quote_char,
                line_no,
                line_no,
                offset + body.find("="),
                comment=comment,
                is_comment=True,
            )
            variables[variable.identity] = variable

        return variables


def parse_variables(
    lines: Sequence[str],
    content_hash: Optional[str] = None,
    interner: Optional[StringInterner] = None,
) -> Dict[str, ParsedVariable]:
    """
    Parse buffer lines into variables (uncached).

    Args:
        lines: Buffer lines without line terminators
        content_hash: Snapshot fingerprint recorded on each variable
        interner: Optional interner for keys and quote characters

    Returns:
        Mapping of "KEY@start_line" to ParsedVariable
    """
    return Lexer(lines, content_hash, interner).tokenize()


def parse_commented_variables(
    lines: Sequence[str],
    content_hash: Optional[str] = None,
    interner: Optional[StringInterner] = None,
) -> Dict[str, ParsedVariable]:
    return Lexer(lines, content_hash, interner).tokenize_comments()


def parse_content(content: str) -> Dict[str, ParsedVariable]:
    """Parse file content, splitting it into lines first."""
    return parse_variables(content.splitlines())


def get_keys(variables: Dict[str, ParsedVariable]) -> Dict[str, str]:
    """
    Extract key/value pairs. When a key is assigned more than once the last
    assignment wins, as it does when the file is sourced.
    """
    ordered = sorted(variables.values(), key=lambda v: v.start_line)
    return {variable.key: variable.value for variable in ordered if not variable.is_comment}

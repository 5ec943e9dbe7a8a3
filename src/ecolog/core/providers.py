"""
Language providers: how environment variable access looks in source code.

A provider pairs a regex for an access expression (ending in the variable
name, captured as group 1) with an extractor that pulls the variable name
out of a line at a cursor column. Providers are validated once, when they
are registered.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .errors import ProviderError


logger = logging.getLogger(__name__)

MAX_PATTERN_LENGTH = 1000
NAME = r"([A-Za-z_][A-Za-z0-9_]*)"

_WORD_CHAR = re.compile(r"[A-Za-z0-9_]")
_UNSAFE_FILETYPE_CHARS = re.compile(r"[^\w\-]")

Extractor = Callable[[str, int], Optional[str]]


@dataclass(frozen=True)
class Provider:
    """
    Attributes:
        name: Provider name
        pattern: Regex matching an access expression, variable name in group 1
        filetypes: Filetypes the provider applies to
        extract_variable: (line, col) -> variable name ending at col, or None
        get_completion_trigger: Returns the text that triggers completion
    """
    name: str
    pattern: str
    filetypes: Tuple[str, ...]
    extract_variable: Extractor
    get_completion_trigger: Optional[Callable[[], str]] = None


@dataclass(frozen=True)
class Reference:
    """A variable access found in source text."""
    name: str
    line: int  # 1-based
    column: int  # 0-based start of the name
    provider: str


def _sanitize_filetype(filetype) -> str:
    if not isinstance(filetype, str) or not filetype:
        raise ProviderError(f"Invalid filetype: {filetype!r}")
    sanitized = _UNSAFE_FILETYPE_CHARS.sub("", filetype)
    if sanitized != filetype:
        logger.warning("Filetype contains invalid characters: %s", filetype)
    if not sanitized:
        raise ProviderError(f"Invalid filetype: {filetype!r}")
    return sanitized


def validate_provider(provider: Provider) -> Provider:
    """
    Check a provider and normalize its filetypes.

    Raises:
        ProviderError: On an empty, oversized or invalid pattern, missing
            filetypes or a non-callable extractor
    """
    if not isinstance(provider, Provider):
        raise ProviderError(f"Expected a Provider, got {type(provider).__name__}")

    pattern = provider.pattern
    if not isinstance(pattern, str) or not pattern:
        raise ProviderError(f"Provider {provider.name} must have a non-empty pattern")
    if len(pattern) > MAX_PATTERN_LENGTH:
        raise ProviderError(f"Provider {provider.name} pattern is longer than {MAX_PATTERN_LENGTH} characters")
    try:
        re.compile(pattern)
    except re.error as e:
        raise ProviderError(f"Provider {provider.name} pattern does not compile: {e}") from e

    filetypes = (provider.filetypes,) if isinstance(provider.filetypes, str) else tuple(provider.filetypes or ())
    if not filetypes:
        raise ProviderError(f"Provider {provider.name} must have at least one filetype")
    filetypes = tuple(_sanitize_filetype(ft) for ft in filetypes)

    if not callable(provider.extract_variable):
        raise ProviderError(f"Provider {provider.name} must have a callable extract_variable")
    trigger = provider.get_completion_trigger
    if trigger is not None and not callable(trigger):
        raise ProviderError(f"Provider {provider.name} get_completion_trigger must be callable")

    return Provider(provider.name, pattern, filetypes, provider.extract_variable, trigger)


class ProviderRegistry:
    """Providers indexed by filetype."""

    def __init__(self):
        self._by_filetype: Dict[str, List[Provider]] = {}

    def register(self, provider: Provider) -> Provider:
        provider = validate_provider(provider)
        for filetype in provider.filetypes:
            self._by_filetype.setdefault(filetype, []).append(provider)
        return provider

    def register_many(self, providers: Iterable[Provider]) -> List[Provider]:
        """Register several providers; nothing is registered if any is invalid."""
        validated = [validate_provider(provider) for provider in providers]
        for provider in validated:
            self.register(provider)
        return validated

    def get_providers(self, filetype: str) -> List[Provider]:
        if not isinstance(filetype, str) or not filetype:
            return []
        return list(self._by_filetype.get(_UNSAFE_FILETYPE_CHARS.sub("", filetype), []))

    @property
    def filetypes(self) -> List[str]:
        return sorted(self._by_filetype)


def call_extract(provider: Provider, line: str, col: int) -> Optional[str]:
    """Run a provider's extractor; a failure is logged and treated as no match."""
    try:
        return provider.extract_variable(line, col)
    except Exception as e:
        logger.warning("Provider %s extract_variable failed: %s", provider.name, e)
        return None


def call_completion_trigger(provider: Provider) -> Optional[str]:
    if provider.get_completion_trigger is None:
        return None
    try:
        return provider.get_completion_trigger()
    except Exception as e:
        logger.warning("Provider %s get_completion_trigger failed: %s", provider.name, e)
        return None


def find_word_boundaries(line: str, col: int) -> Optional[Tuple[int, int]]:
    """
    Bounds of the identifier under a 0-based column.

    Returns:
        (start, end) with end exclusive, or None when col is not on an
        identifier character
    """
    if not 0 <= col < len(line) or not _WORD_CHAR.match(line[col]):
        return None

    start = col
    while start > 0 and _WORD_CHAR.match(line[start - 1]):
        start -= 1
    end = col + 1
    while end < len(line) and _WORD_CHAR.match(line[end]):
        end += 1
    return start, end


def find_references(text: str, filetype: str, registry: "ProviderRegistry") -> List[Reference]:
    """
    Find environment variable accesses in source text.

    Returns:
        References in text order
    """
    providers = registry.get_providers(filetype)
    references: List[Reference] = []
    seen = set()

    for line_no, line in enumerate(text.splitlines(), start=1):
        for provider in providers:
            for match in re.finditer(provider.pattern, line):
                name = call_extract(provider, line, match.end())
                if not name:
                    continue
                column = match.end() - len(name)
                if (line_no, column) in seen:
                    continue
                seen.add((line_no, column))
                references.append(Reference(name, line_no, column, provider.name))

    references.sort(key=lambda ref: (ref.line, ref.column))
    return references


def regex_extractor(pattern: str) -> Extractor:
    """Extractor returning group 1 of pattern when it ends exactly at col."""
    anchored = re.compile(f"(?:{pattern})$")

    def extract(line: str, col: int) -> Optional[str]:
        match = anchored.search(line[:col])
        return match.group(1) if match else None

    return extract


def _builtin(name: str, filetypes: Iterable[str], prefixes: Iterable[str], trigger: str) -> Provider:
    pattern = "(?:" + "|".join(prefixes) + ")" + NAME
    return Provider(name, pattern, tuple(filetypes), regex_extractor(pattern), lambda: trigger)


_Q = r"""["']"""

BUILTIN_PROVIDERS = [
    _builtin("python", ["python"], [
        r"os\.environ\[" + _Q,
        r"os\.environ\.get\(\s*" + _Q,
        r"os\.getenv\(\s*" + _Q,
    ], "os.environ"),
    _builtin("javascript", ["javascript", "javascriptreact", "typescript", "typescriptreact"], [
        r"process\.env\.",
        r"process\.env\[" + _Q,
        r"import\.meta\.env\.",
        r"Deno\.env\.get\(\s*" + _Q,
        r"Bun\.env\.",
    ], "process.env."),
    _builtin("shell", ["sh", "bash", "zsh"], [
        r"\$\{",
        r"\$(?=[A-Za-z_])",
    ], "$"),
    _builtin("lua", ["lua"], [
        r"os\.getenv\(\s*" + _Q,
        r"vim\.env\.",
    ], "os.getenv("),
    _builtin("go", ["go"], [
        r"os\.Getenv\(\s*\"",
        r"os\.LookupEnv\(\s*\"",
    ], "os.Getenv("),
    _builtin("rust", ["rust"], [
        r"(?:std::)?env::var\(\s*\"",
        r"(?:std::)?env::var_os\(\s*\"",
        r"env!\(\s*\"",
    ], "env::var("),
    _builtin("php", ["php"], [
        r"getenv\(\s*" + _Q,
        r"\$_ENV\[" + _Q,
        r"\$_SERVER\[" + _Q,
        r"\benv\(\s*" + _Q,
    ], "$_ENV["),
    _builtin("ruby", ["ruby"], [
        r"ENV\[" + _Q,
        r"ENV\.fetch\(\s*" + _Q,
    ], "ENV["),
]


def default_registry() -> ProviderRegistry:
    """A registry with all built-in providers."""
    registry = ProviderRegistry()
    registry.register_many(BUILTIN_PROVIDERS)
    return registry

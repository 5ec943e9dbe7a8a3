"""
Value classification for .env entries.

This module infers:
- The display type of a value (boolean, number, url, json, ...)
- Whether a value is likely a secret (high entropy or sensitive prefix)
- A safe placeholder for .env.example generation
"""

import ipaddress
import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union


logger = logging.getLogger(__name__)

# Sensitive prefixes that indicate secrets
SECRET_PREFIXES = [
    'sk_',      # Stripe, OpenAI, etc.
    'pk_',      # Public keys (still sensitive in some contexts)
    'AKIA',     # AWS Access Key ID
    'vault:',   # HashiCorp Vault
    'ghp_',     # GitHub Personal Access Token
    'gho_',     # GitHub OAuth Token
    'ghs_',     # GitHub Server-to-Server Token
    'xoxb-',    # Slack bot token
    'key_',
    'token_',
    'secret_',
]

ENTROPY_THRESHOLD = 4.5

_BOOLEANS = {"true", "false", "yes", "no", "on", "off", "1", "0"}
_NUMBER = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_URL = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.IGNORECASE)
_LOCALHOST = re.compile(r"^(https?://)?(localhost|127\.0\.0\.1|0\.0\.0\.0)(:\d{1,5})?(/.*)?$", re.IGNORECASE)
_DATABASE_URL = re.compile(
    r"^(postgres(ql)?|mysql|mariadb|mongodb(\+srv)?|redis|rediss|sqlite|mssql|oracle|cockroachdb)://",
    re.IGNORECASE,
)
_ISO_DATE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])-(0[1-9]|[12]\d|3[01])(T([01]\d|2[0-3]):[0-5]\d(:[0-5]\d(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?)?$")
_TIME = re.compile(r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?$")
_HEX_COLOR = re.compile(r"^#([0-9a-fA-F]{3}|[0-9a-fA-F]{4}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")


def calculate_entropy(value: str) -> float:
    """
    Calculate Shannon entropy of a string.

    Args:
        value: String to analyze

    Returns:
        Entropy value (bits per character)
    """
    if not value:
        return 0.0

    freq: Dict[str, int] = {}
    for char in value:
        freq[char] = freq.get(char, 0) + 1

    entropy = 0.0
    length = len(value)
    for count in freq.values():
        probability = count / length
        entropy -= probability * math.log2(probability)

    return entropy


def is_secret(value: str) -> bool:
    """
    Determine if a value is likely a secret.

    A value is considered a secret if its entropy is above
    ENTROPY_THRESHOLD or it starts with a known secret prefix.
    """
    if not value:
        return False

    if calculate_entropy(value) > ENTROPY_THRESHOLD:
        return True

    return any(value.startswith(prefix) for prefix in SECRET_PREFIXES)


def generate_placeholder(key: str, value: str) -> str:
    """
    Generate a placeholder for a key-value pair in .env.example.

    Simple config values (short, no URL or path characters) are kept as-is;
    everything else becomes "<your_key>".
    """
    key_lower = key.lower()

    if is_secret(value):
        return f"<your_{key_lower}>"

    if value and len(value) < 50 and not any(char in value for char in ['/', ':', '@', '.', '\n']):
        return value

    return f"<your_{key_lower}>"


def _is_boolean(value: str) -> bool:
    return value.lower() in _BOOLEANS


def _is_json(value: str) -> bool:
    if value[:1] not in ("{", "["):
        return False
    try:
        json.loads(value)
    except ValueError:
        return False
    return True


def _is_ipv4(value: str) -> bool:
    if value.count(".") != 3:
        return False
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        return False
    return True


def _is_url(value: str) -> bool:
    return bool(_URL.match(value)) and not _LOCALHOST.match(value)


# Checked in order; the first match wins.
BUILTIN_TYPES: List[Tuple[str, Callable[[str], bool]]] = [
    ("boolean", _is_boolean),
    ("number", lambda v: bool(_NUMBER.match(v))),
    ("json", _is_json),
    ("database_url", lambda v: bool(_DATABASE_URL.match(v))),
    ("localhost", lambda v: bool(_LOCALHOST.match(v))),
    ("url", _is_url),
    ("ipv4", _is_ipv4),
    ("iso_date", lambda v: bool(_ISO_DATE.match(v))),
    ("time", lambda v: bool(_TIME.match(v))),
    ("hex_color", lambda v: bool(_HEX_COLOR.match(v))),
]

BUILTIN_TYPE_NAMES = [name for name, _ in BUILTIN_TYPES]


@dataclass
class CustomType:
    """A user-defined type: a regex plus optional validation and transform."""
    name: str
    pattern: "re.Pattern"
    validate: Optional[Callable[[str], bool]] = None
    transform: Optional[Callable[[str], Any]] = None

    def matches(self, value: str) -> bool:
        if not self.pattern.search(value):
            return False
        if self.validate is None:
            return True
        try:
            return bool(self.validate(value))
        except Exception as e:
            logger.warning("Validator for type %s failed: %s", self.name, e)
            return False


class TypeRegistry:
    """
    Detects value types.

    Custom types are checked before built-ins, in registration order.
    """

    def __init__(self, enabled: Union[bool, Iterable[str]] = True):
        self.custom_types: Dict[str, CustomType] = {}
        self.enabled: List[str] = []
        self.set_enabled(enabled)

    def set_enabled(self, enabled: Union[bool, Iterable[str]]):
        """
        Select built-in types.

        Args:
            enabled: True for all, False for none, or a list of type names
        """
        if enabled is True:
            self.enabled = list(BUILTIN_TYPE_NAMES)
        elif enabled is False:
            self.enabled = []
        else:
            names = list(enabled)
            unknown = [name for name in names if name not in BUILTIN_TYPE_NAMES]
            if unknown:
                logger.warning("Ignoring unknown built-in types: %s", ", ".join(unknown))
            self.enabled = [name for name in BUILTIN_TYPE_NAMES if name in names]

    def register(
        self,
        name: str,
        pattern: str,
        validate: Optional[Callable[[str], bool]] = None,
        transform: Optional[Callable[[str], Any]] = None,
    ) -> CustomType:
        """
        Register a custom type.

        Raises:
            ValueError: If the name is empty or the pattern does not compile
        """
        if not name:
            raise ValueError("Custom type name must not be empty")
        try:
            compiled = re.compile(pattern)
        except re.error as e:
            raise ValueError(f"Invalid pattern for type {name}: {e}") from e

        custom = CustomType(name, compiled, validate, transform)
        self.custom_types[name] = custom
        return custom

    def register_from_config(self, custom_types: Dict[str, Dict[str, Any]]):
        """Register types from a {name: {pattern, validate?, transform?}} mapping."""
        for name, definition in (custom_types or {}).items():
            if not isinstance(definition, dict) or "pattern" not in definition:
                logger.warning("Custom type %s has no pattern, skipping", name)
                continue

            hooks = {}
            for hook in ("validate", "transform"):
                func = definition.get(hook)
                if func is not None and not callable(func):
                    logger.warning("Custom type %s: %s is not callable, ignoring it", name, hook)
                    func = None
                hooks[hook] = func

            self.register(name, definition["pattern"], hooks["validate"], hooks["transform"])

    def detect_type(self, value: str) -> Tuple[str, Optional[Any]]:
        """
        Detect the type of a value.

        Returns:
            Tuple of (type_name, transformed_value). transformed_value is
            only set by custom types with a transform.
        """
        if value is None:
            return "string", None

        for custom in self.custom_types.values():
            if custom.matches(value):
                if custom.transform is None:
                    return custom.name, None
                try:
                    return custom.name, custom.transform(value)
                except Exception as e:
                    logger.warning("Transform for type %s failed: %s", custom.name, e)
                    return custom.name, None

        if value == "":
            return "string", None

        for name, check in BUILTIN_TYPES:
            if name in self.enabled and check(value):
                return name, None

        return "string", None


_default_registry = TypeRegistry()


def detect_type(value: str) -> Tuple[str, Optional[Any]]:
    """Detect a value's type with the default registry (all built-ins)."""
    return _default_registry.detect_type(value)

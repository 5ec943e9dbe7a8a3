"""
Environment file discovery and loading.

Finds .env files in a directory, picks the active one, and loads its
variables (optionally merged with the process environment) with detected
types and source tracking.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from .inference import TypeRegistry, generate_placeholder
from .lexer import parse_content


logger = logging.getLogger(__name__)

EXAMPLE_FILE = ".env.example"
SHELL_SOURCE = "shell"


@dataclass
class EnvVariable:
    """A loaded environment variable."""
    value: Any  # transformed by a custom type when one applies
    type: str
    raw_value: str
    source: str  # file path, or "shell"
    comment: Optional[str] = None


def _is_env_file(name: str) -> bool:
    if name == ".env":
        return True
    if not name.startswith(".env."):
        return False
    suffix = name[len(".env."):]
    return bool(suffix) and "." not in suffix


def environment_suffix(path) -> str:
    """
    Environment name of an env file: ".env.production" -> "production".

    Returns:
        The suffix, or "" for a plain .env file
    """
    name = Path(path).name
    if name.startswith(".env."):
        return name[len(".env."):]
    return ""


def find_env_files(path: str = ".", preferred_environment: str = "") -> List[Path]:
    """
    Find .env and .env.<name> files in a directory.

    .env.example is excluded since it is generated output.

    Sort order:
        1. The file for preferred_environment, if given
        2. .env
        3. Alphabetical

    Args:
        path: Directory to search (not recursive)
        preferred_environment: Environment to put first, e.g. "development"

    Returns:
        List of Path objects, active file first
    """
    root = Path(path)
    if not root.is_dir():
        return []

    files = [
        entry for entry in root.iterdir()
        if entry.is_file() and _is_env_file(entry.name) and entry.name != EXAMPLE_FILE
    ]

    def sort_key(entry: Path):
        preferred = bool(preferred_environment) and environment_suffix(entry) == preferred_environment
        return (not preferred, entry.name != ".env", entry.name)

    files.sort(key=sort_key)
    return files


def load_env_file(path, registry: Optional[TypeRegistry] = None) -> Dict[str, EnvVariable]:
    """
    Load the variables of one env file.

    Multi-line values are joined with newlines. When a key is assigned more
    than once, the last assignment wins.

    Args:
        path: Env file path
        registry: Type registry, defaults to all built-in types

    Returns:
        Dictionary mapping variable names to EnvVariable
    """
    registry = registry or TypeRegistry()
    path = Path(path)
    content = path.read_text(encoding='utf-8')

    variables: Dict[str, EnvVariable] = {}
    parsed = sorted(parse_content(content).values(), key=lambda v: v.start_line)
    for variable in parsed:
        type_name, transformed = registry.detect_type(variable.value)
        variables[variable.key] = EnvVariable(
            value=transformed if transformed is not None else variable.value,
            type=type_name,
            raw_value=variable.value,
            source=str(path),
            comment=variable.comment,
        )

    return variables


def load_shell_variables(
    environ: Optional[Mapping[str, str]] = None,
    filter: Optional[Callable[[str, str], bool]] = None,
    transform: Optional[Callable[[str, str], str]] = None,
    registry: Optional[TypeRegistry] = None,
) -> Dict[str, EnvVariable]:
    """
    Load process environment variables.

    Args:
        environ: Variables to load, defaults to os.environ
        filter: Keep only variables for which filter(key, value) is true
        transform: Replace each value with transform(key, value)
        registry: Type registry
    """
    registry = registry or TypeRegistry()
    environ = os.environ if environ is None else environ

    variables: Dict[str, EnvVariable] = {}
    for key, value in environ.items():
        if filter is not None and not filter(key, value):
            continue
        if transform is not None:
            value = transform(key, value)

        type_name, transformed = registry.detect_type(value)
        variables[key] = EnvVariable(
            value=transformed if transformed is not None else value,
            type=type_name,
            raw_value=value,
            source=SHELL_SOURCE,
        )

    return variables


def load_environment(
    env_file=None,
    shell: Optional[Dict[str, EnvVariable]] = None,
    override: bool = False,
    registry: Optional[TypeRegistry] = None,
) -> Dict[str, EnvVariable]:
    """
    Merge shell variables with the variables of the active env file.

    File values win over shell values unless override is set, in which case
    shell values are kept for keys defined in both.

    Args:
        env_file: Active env file, or None for shell variables only
        shell: Shell variables from load_shell_variables
        override: Let shell values take precedence
        registry: Type registry

    Returns:
        Dictionary mapping variable names to EnvVariable
    """
    merged: Dict[str, EnvVariable] = dict(shell or {})
    if env_file is None:
        return merged

    try:
        file_vars = load_env_file(env_file, registry)
    except OSError as e:
        logger.warning("Could not read %s: %s", env_file, e)
        return merged

    for key, variable in file_vars.items():
        if key in merged and override:
            continue
        merged[key] = variable

    return merged


def get_example_path(project_root: str = ".") -> Path:
    return Path(project_root) / EXAMPLE_FILE


def generate_example_file(env_file, output=None) -> Path:
    """
    Write a .env.example next to an env file, with values replaced by
    placeholders.

    Args:
        env_file: Source env file
        output: Destination, defaults to .env.example beside env_file

    Returns:
        Path of the written file
    """
    env_file = Path(env_file)
    output = Path(output) if output else get_example_path(str(env_file.parent))

    parsed = sorted(parse_content(env_file.read_text(encoding='utf-8')).values(), key=lambda v: v.start_line)

    lines = []
    seen = set()
    for variable in reversed(parsed):
        if variable.key in seen:
            continue
        seen.add(variable.key)
        lines.append(f"{variable.key}={generate_placeholder(variable.key, variable.value)}")

    lines.reverse()
    output.write_text("\n".join(lines) + ("\n" if lines else ""), encoding='utf-8')
    logger.debug("Wrote %d placeholders to %s", len(lines), output)
    return output

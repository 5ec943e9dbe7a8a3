"""
Environment presets: named schemas of expected variables and their types.

Presets are stored together in one JSON object keyed by preset name:

    {"backend": {"name": "backend", "variables": {"PORT": {"type": "number", "required": true}}}}
"""

import json
import logging
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import PresetError
from .inference import TypeRegistry
from .lexer import get_keys, parse_content


logger = logging.getLogger(__name__)

_VARIABLE_FIELDS = ("type", "required", "description")


@dataclass
class PresetVariable:
    """Expected type of one variable in a preset."""
    type: str
    required: bool = True
    description: Optional[str] = None


@dataclass
class Preset:
    name: str
    variables: Dict[str, PresetVariable] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "Preset":
        variables = {
            key: PresetVariable(**{k: v for k, v in spec.items() if k in _VARIABLE_FIELDS})
            for key, spec in (data.get("variables") or {}).items()
        }
        return cls(name=data.get("name", name), variables=variables)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class PresetStore:
    """
    Manages preset storage.

    The whole file is read and rewritten on every operation.
    """

    def __init__(self, path: str, registry: Optional[TypeRegistry] = None):
        """
        Initialize preset store.

        Args:
            path: Path to the JSON presets file
            registry: Type registry used to classify values
        """
        self.path = Path(path)
        self.registry = registry or TypeRegistry()

    def load(self, strict: bool = False) -> Dict[str, Preset]:
        """
        Load all presets from disk.

        Args:
            strict: Raise PresetError instead of returning {} on a bad file

        Returns:
            Mapping of preset name to Preset
        """
        if not self.path.exists():
            return {}

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("top level is not an object")
            return {name: Preset.from_dict(name, preset) for name, preset in data.items()}
        except (OSError, ValueError, TypeError, AttributeError) as e:
            if strict:
                raise PresetError(f"Failed to parse presets file {self.path}: {e}") from e
            logger.error("Failed to parse presets file %s: %s", self.path, e)
            return {}

    def _save(self, presets: Dict[str, Preset]) -> bool:
        """Replace the presets file as a whole. On failure the old file is kept."""
        try:
            content = json.dumps({name: preset.to_dict() for name, preset in presets.items()}, indent=2)
        except (TypeError, ValueError) as e:
            logger.error("Failed to serialize presets: %s", e)
            return False

        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                f.write(content)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error("Failed to write presets file %s: %s", self.path, e)
            return False
        return True

    def _read_env(self, env_file: str) -> Optional[Dict[str, str]]:
        try:
            content = Path(env_file).read_text(encoding='utf-8')
        except OSError:
            return None
        return get_keys(parse_content(content))

    def list_presets(self) -> Dict[str, Preset]:
        return self.load()

    def get_preset(self, name: str) -> Optional[Preset]:
        return self.load().get(name)

    def create_preset_from_file(self, name: str, env_file: str) -> bool:
        """
        Create (or replace) a preset from the variables of an env file.
        Every variable is marked required with its detected type.
        """
        values = self._read_env(env_file)
        if values is None:
            logger.error("Could not open env file %s", env_file)
            return False

        variables = {
            key: PresetVariable(type=self.registry.detect_type(value)[0])
            for key, value in values.items()
        }
        return self.create_preset_from_variables(name, variables)

    def create_preset_from_variables(self, name: str, variables: Dict[str, Any]) -> bool:
        """
        Create (or replace) a preset.

        Args:
            name: Preset name
            variables: Mapping of variable name to PresetVariable or a dict
                with type/required/description
        """
        converted = {}
        for key, spec in variables.items():
            if isinstance(spec, dict):
                spec = PresetVariable(**{k: v for k, v in spec.items() if k in _VARIABLE_FIELDS})
            converted[key] = spec

        presets = self.load()
        presets[name] = Preset(name=name, variables=converted)
        return self._save(presets)

    def validate_env_file(self, env_file: str, preset_name: str) -> Dict[str, str]:
        """
        Validate an env file against a preset.

        Returns:
            Mapping of variable name to error message; empty when valid.
            A missing preset or unreadable file is reported under "error".
        """
        preset = self.get_preset(preset_name)
        if preset is None:
            return {"error": f"Preset not found: {preset_name}"}

        values = self._read_env(env_file)
        if values is None:
            return {"error": "Could not open env file"}

        errors: Dict[str, str] = {}
        for key, value in values.items():
            expected = preset.variables.get(key)
            if expected is None:
                errors[key] = "Unknown variable not defined in preset"
                continue
            actual = self.registry.detect_type(value)[0]
            if actual != expected.type:
                errors[key] = f"Type mismatch: expected {expected.type}, got {actual}"

        for key, expected in preset.variables.items():
            if expected.required and key not in values:
                errors[key] = "Required variable is missing"

        return errors

    def delete_preset(self, name: str) -> bool:
        presets = self.load()
        if name not in presets:
            return False
        del presets[name]
        return self._save(presets)

    def update_preset_variable(self, preset_name: str, var_name: str, **properties) -> bool:
        """
        Update type/required/description of one preset variable.

        Returns:
            False when the preset or variable does not exist, or a property
            name is not recognized
        """
        presets = self.load()
        preset = presets.get(preset_name)
        if preset is None or var_name not in preset.variables:
            return False

        unknown = set(properties) - set(_VARIABLE_FIELDS)
        if unknown:
            logger.error("Unknown preset variable properties: %s", ", ".join(sorted(unknown)))
            return False

        variable = preset.variables[var_name]
        for prop, value in properties.items():
            setattr(variable, prop, value)

        return self._save(presets)

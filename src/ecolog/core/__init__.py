"""
ecolog core modules.

Includes:
- lexer: Line-oriented .env parsing with multi-line values
- masking: Mask generation and partial reveal
- cache: Bounded LRU cache with TTL
- hashing: Sampled content hashing and string interning
- overlay: Overlay specs and batched application
- engine: Cached masking pipeline
- inference: Type detection and secret heuristics
- presets: Preset storage and validation
- discovery: Env file discovery and loading
- providers: Language providers for variable references
"""

from . import errors
from . import hashing
from . import cache
from . import lexer
from . import masking
from . import overlay
from . import inference
from . import presets
from . import discovery
from . import providers

__all__ = [
    "errors",
    "hashing",
    "cache",
    "lexer",
    "masking",
    "overlay",
    "inference",
    "presets",
    "discovery",
    "providers",
]

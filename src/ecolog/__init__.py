"""
ecolog - .env parsing and value masking

Parses .env files (including multi-line values), masks their values for
display, and keeps the work cached so it can run on every buffer change.
"""

__version__ = "0.1.0"

from .config import EcologConfig, PerformanceConfig
from .core import lexer, masking, inference, presets, discovery, providers
from .core.engine import MaskingEngine
from .core.masking import MaskPolicy, PartialMode

__all__ = [
    "EcologConfig",
    "PerformanceConfig",
    "MaskingEngine",
    "MaskPolicy",
    "PartialMode",
    "lexer",
    "masking",
    "inference",
    "presets",
    "discovery",
    "providers",
]

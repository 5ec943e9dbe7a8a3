"""
Exception types raised by ecolog.

Parsing and masking never raise on malformed input; these errors signal
misconfiguration or misuse and are raised synchronously to the caller.
"""


class EcologError(Exception):
    """Base class for all ecolog errors."""


class CacheConfigError(EcologError, ValueError):
    """Invalid cache parameters (capacity, TTL or sweep interval)."""


class MaskPolicyError(EcologError, ValueError):
    """Invalid masking policy."""


class ProviderError(EcologError, ValueError):
    """A reference provider was rejected at registration time."""


class PresetError(EcologError):
    """The presets file could not be read or is not a JSON object."""


class EngineStateError(EcologError, RuntimeError):
    """The masking engine was used outside its init()/shutdown() lifecycle."""


class ConfigError(EcologError, ValueError):
    """The configuration file is malformed."""

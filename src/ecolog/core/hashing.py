"""
Cheap content fingerprinting and string interning.

The fingerprint is a sampled byte sum: it is fast enough to run on every
buffer update and is only used as a cache key, never for integrity.
"""

from typing import Optional, Sequence, Union

from .cache import LRUCache


DEFAULT_SAMPLE_RATE = 16
EMPTY_HASH = "empty"


def fast_hash(content: Union[str, Sequence[str]], sample_rate: int = DEFAULT_SAMPLE_RATE) -> str:
    """
    Compute a sampled fingerprint of text content.

    Args:
        content: A string, or a sequence of lines joined with newlines
        sample_rate: Approximate number of sampled bytes (<= 0 samples all)

    Returns:
        Fingerprint string ("empty" for empty content)
    """
    if not isinstance(content, str):
        content = "\n".join(content)

    data = content.encode("utf-8")
    length = len(data)
    if length == 0:
        return EMPTY_HASH

    step = 1 if sample_rate <= 0 else max(1, length // sample_rate)

    value = length
    for i in range(0, length, step):
        value += data[i] * (i + 1)

    return str(value)


class StringInterner:
    """
    Bounded string interning.

    Returns one canonical instance per distinct string so repeated keys and
    quote characters across parse passes share storage. Old strings fall out
    in least-recently-used order.
    """

    def __init__(self, capacity: int = 512):
        self._cache = LRUCache(capacity, enable_stats=False, name="intern")

    def intern(self, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None

        cached = self._cache.get(value)
        if cached is not None:
            return cached

        self._cache.put(value, value)
        return value

    def __len__(self) -> int:
        return len(self._cache)

    def clear(self):
        self._cache.clear()

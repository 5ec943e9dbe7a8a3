"""
Masking engine: the context object owning the caches.

Data flow for one buffer snapshot:

    lines -> content hash -> parse (parsed cache)
          -> per-variable masks (mask cache)
          -> overlay specs (overlay cache)
          -> batched application to a display target

Each cache is keyed on what its result depends on, so an edit anywhere in a
buffer invalidates the parse and overlays for that buffer but not other
buffers.
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence

from ..config import PerformanceConfig
from .cache import LRUCache
from .errors import EngineStateError
from .hashing import StringInterner, fast_hash
from .lexer import ParsedVariable, parse_commented_variables, parse_variables
from .masking import (
    MaskedLine,
    MaskPolicy,
    build_masks,
    mask_value,
    revealed_slices,
    span_is_revealed,
)
from .overlay import (
    DEFAULT_STYLE_TAG,
    BatchScheduler,
    DisplayTarget,
    OverlaySpec,
    apply_overlays_batched,
)


logger = logging.getLogger(__name__)

LineRevealed = Callable[[int], bool]

_CACHE_NAMES = ("parsed", "overlay", "mask")


def _verified_get(cache: LRUCache, key: str, snapshot: tuple):
    """
    Cached result stored under key, or None.

    Keys are sampled fingerprints, so two different snapshots can share one.
    Entries are stored as (snapshot, result) and a hit for other content is a
    miss.
    """
    entry = cache.get(key)
    if entry is None:
        return None

    stored, result = entry
    if stored != snapshot:
        logger.debug("Fingerprint collision in %s cache for %s", cache.name, key)
        return None
    return result


class MaskingEngine:
    """
    Parses buffers and produces masked overlays, memoizing every stage.

    Use init()/shutdown() explicitly or as a context manager:

        with MaskingEngine() as engine:
            engine.process_buffer(target, lines, ".env")
    """

    def __init__(
        self,
        performance: Optional[PerformanceConfig] = None,
        policy: Optional[MaskPolicy] = None,
        clock: Optional[Callable[[], float]] = None,
        style_tag: str = DEFAULT_STYLE_TAG,
    ):
        self.performance = performance or PerformanceConfig()
        self.policy = policy or MaskPolicy()
        self.style_tag = style_tag
        self._clock = clock
        self._caches: Dict[str, LRUCache] = {}
        self.interner: Optional[StringInterner] = None

    def __enter__(self) -> "MaskingEngine":
        return self.init()

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()

    @property
    def initialized(self) -> bool:
        return bool(self._caches)

    def init(self) -> "MaskingEngine":
        """Create the caches. Calling it again on a running engine is a no-op."""
        if self._caches:
            return self

        perf = self.performance
        sizes = {
            "parsed": (perf.parsed_cache_size, perf.parsed_cache_ttl_ms),
            "overlay": (perf.overlay_cache_size, perf.overlay_cache_ttl_ms),
            "mask": (perf.mask_cache_size, perf.mask_cache_ttl_ms),
        }
        extra = {} if self._clock is None else {"clock": self._clock}

        for name in _CACHE_NAMES:
            capacity, ttl_ms = sizes[name]
            self._caches[name] = LRUCache(
                capacity,
                ttl_ms=ttl_ms,
                cleanup_interval_ms=perf.cleanup_interval_ms,
                auto_cleanup=perf.auto_cleanup,
                name=name,
                **extra,
            )

        self.interner = StringInterner(perf.intern_cache_size)
        logger.debug("Masking engine started")
        return self

    def shutdown(self):
        """Stop background sweeps and drop all cached data. Idempotent."""
        for cache in self._caches.values():
            cache.shutdown()
        self._caches = {}
        self.interner = None

    shutdown_caches = shutdown

    def _cache(self, name: str) -> LRUCache:
        cache = self._caches.get(name)
        if cache is None:
            raise EngineStateError("MaskingEngine.init() must be called before use")
        return cache

    def configure_performance(self, **options) -> PerformanceConfig:
        """
        Update performance settings at runtime.

        TTL and sweep settings are pushed to the live caches without losing
        entries; cache sizes take effect on the next init().
        """
        self.performance.update(**options)
        perf = self.performance
        ttls = {
            "parsed": perf.parsed_cache_ttl_ms,
            "overlay": perf.overlay_cache_ttl_ms,
            "mask": perf.mask_cache_ttl_ms,
        }
        for name, cache in self._caches.items():
            cache.configure(
                ttl_ms=ttls[name],
                cleanup_interval_ms=perf.cleanup_interval_ms,
                auto_cleanup=perf.auto_cleanup,
            )
        return perf

    def content_hash(self, lines: Sequence[str]) -> str:
        return fast_hash(lines, self.performance.hash_sample_rate)

    def parse_lines(self, lines: Sequence[str], content_hash: Optional[str] = None) -> Dict[str, ParsedVariable]:
        """
        Parse buffer lines, reusing the result for an identical snapshot.

        Args:
            lines: Buffer lines
            content_hash: Snapshot fingerprint, computed when omitted

        Returns:
            Mapping of "KEY@start_line" to ParsedVariable
        """
        cache = self._cache("parsed")
        if content_hash is None:
            content_hash = self.content_hash(lines)

        snapshot = tuple(lines)
        cached = _verified_get(cache, content_hash, snapshot)
        if cached is not None:
            return cached

        parsed = parse_variables(lines, content_hash, self.interner)
        cache.put(content_hash, (snapshot, parsed))
        return parsed

    def parse_comment_lines(self, lines: Sequence[str], content_hash: Optional[str] = None) -> Dict[str, ParsedVariable]:
        """Parse commented-out assignments, cached next to the regular parse."""
        cache = self._cache("parsed")
        if content_hash is None:
            content_hash = self.content_hash(lines)

        cache_key = f"{content_hash}:comments"
        snapshot = tuple(lines)
        cached = _verified_get(cache, cache_key, snapshot)
        if cached is not None:
            return cached

        parsed = parse_commented_variables(lines, content_hash, self.interner)
        cache.put(cache_key, (snapshot, parsed))
        return parsed

    def _mask_cache_key(
        self,
        variable: ParsedVariable,
        source_filename: str,
        mask_length: Optional[int],
        policy: MaskPolicy,
    ) -> str:
        parts = (
            variable.key,
            source_filename,
            str(mask_length or "auto"),
            variable.quote_char or "none",
            str(variable.start_line),
            str(variable.end_line),
            variable.content_hash or "",
            policy.fingerprint,
        )
        return fast_hash(":".join(parts), 0)

    def _masked_lines(
        self,
        variable: ParsedVariable,
        lines: Sequence[str],
        policy: MaskPolicy,
        source_filename: str,
        mask_length: Optional[int],
    ) -> List[MaskedLine]:
        cache = self._cache("mask")
        cache_key = self._mask_cache_key(variable, source_filename, mask_length, policy)

        span = tuple(lines[variable.start_line - 1:variable.end_line])
        cached = _verified_get(cache, cache_key, span)
        if cached is not None:
            return cached

        masked = build_masks(variable, lines, policy, mask_length)
        if masked:
            cache.put(cache_key, (span, masked))
        return masked

    def generate_masks(
        self,
        variable: ParsedVariable,
        lines: Sequence[str],
        policy: Optional[MaskPolicy] = None,
        source_filename: str = "",
        is_line_revealed: Optional[LineRevealed] = None,
    ) -> Dict[int, str]:
        """
        Masked text per line for one variable.

        When any line of the variable's span is revealed the original text
        of the span is returned instead.

        Returns:
            Mapping of 1-based line number to the text drawn after '=' on the
            first line and from column 0 on following lines
        """
        policy = policy or self.policy
        if span_is_revealed(variable, is_line_revealed):
            return revealed_slices(variable, lines)

        masked = self._masked_lines(variable, lines, policy, source_filename, policy.fixed_mask_length)
        return {entry.line: entry.text for entry in masked}

    def generate_fixed_length_masks(
        self,
        variable: ParsedVariable,
        lines: Sequence[str],
        mask_length: int,
        policy: Optional[MaskPolicy] = None,
        source_filename: str = "",
        is_line_revealed: Optional[LineRevealed] = None,
    ) -> Dict[int, str]:
        """Like generate_masks with an explicit fixed mask length."""
        policy = policy or self.policy
        if span_is_revealed(variable, is_line_revealed):
            return revealed_slices(variable, lines)

        masked = self._masked_lines(variable, lines, policy, source_filename, mask_length)
        return {entry.line: entry.text for entry in masked}

    def create_overlay_specs(
        self,
        parsed_variables: Dict[str, ParsedVariable],
        lines: Sequence[str],
        policy: Optional[MaskPolicy] = None,
        source_filename: str = "",
        skip_comments: bool = True,
        is_line_revealed: Optional[LineRevealed] = None,
    ) -> List[OverlaySpec]:
        """
        Overlay specs hiding every value in a buffer.

        Variables with an empty value or a revealed line produce no
        overlays. When skip_comments is False, assignments inside comment
        lines are masked too.

        Returns:
            OverlaySpec list sorted by position
        """
        policy = policy or self.policy
        cache = self._cache("overlay")
        content_hash = self.content_hash(lines)

        revealed = ()
        if is_line_revealed is not None:
            revealed = tuple(n for n in range(1, len(lines) + 1) if is_line_revealed(n))

        cache_key = ":".join((
            source_filename,
            content_hash,
            policy.fingerprint,
            "comments" if not skip_comments else "nocomments",
            ",".join(map(str, revealed)),
            fast_hash(",".join(parsed_variables), 0),
        ))
        snapshot = (tuple(lines), tuple(parsed_variables))
        cached = _verified_get(cache, cache_key, snapshot)
        if cached is not None:
            return cached

        variables = list(parsed_variables.values())
        if not skip_comments:
            variables.extend(self.parse_comment_lines(lines, content_hash).values())

        overlays: List[OverlaySpec] = []
        for variable in variables:
            if not variable.value:
                continue
            if span_is_revealed(variable, is_line_revealed):
                continue

            masked = self._masked_lines(variable, lines, policy, source_filename, policy.fixed_mask_length)
            for entry in masked:
                overlays.append(OverlaySpec(
                    line=entry.line - 1,
                    column=entry.column,
                    display_text=entry.text,
                    style_tag=self.style_tag,
                    conceal_width=entry.width,
                ))

        overlays.sort(key=lambda spec: (spec.line, spec.column))
        cache.put(cache_key, (snapshot, overlays))
        return overlays

    def apply_overlays_batched(
        self,
        target: DisplayTarget,
        overlays: Sequence[OverlaySpec],
        batch_size: Optional[int] = None,
        scheduler: Optional[BatchScheduler] = None,
    ):
        apply_overlays_batched(target, overlays, batch_size or self.performance.batch_size, scheduler)

    def process_buffer(
        self,
        target: DisplayTarget,
        lines: Sequence[str],
        source_filename: str = "",
        policy: Optional[MaskPolicy] = None,
        skip_comments: bool = True,
        is_line_revealed: Optional[LineRevealed] = None,
        scheduler: Optional[BatchScheduler] = None,
    ) -> List[OverlaySpec]:
        """
        Parse, mask and render one buffer snapshot.

        Returns:
            The overlays handed to the target
        """
        if not lines or not target.is_valid():
            return []

        content_hash = self.content_hash(lines)
        parsed = self.parse_lines(lines, content_hash)
        overlays = self.create_overlay_specs(
            parsed, lines, policy, source_filename, skip_comments, is_line_revealed
        )
        self.apply_overlays_batched(target, overlays, scheduler=scheduler)
        return overlays

    def mask_value(self, value: str, policy: Optional[MaskPolicy] = None, quote_char: Optional[str] = None) -> str:
        return mask_value(value, policy or self.policy, quote_char)

    def clear_caches(self):
        for cache in self._caches.values():
            cache.clear()

    def get_cache_stats(self) -> Dict[str, Dict]:
        """Stats, size, memory estimate and hit ratio per cache."""
        stats = {}
        for name in _CACHE_NAMES:
            cache = self._caches.get(name)
            if cache is None:
                stats[name] = {'not_initialized': True}
                continue
            stats[name] = {
                'stats': cache.get_stats(),
                'size': cache.get_size(),
                'memory_usage': cache.get_memory_usage(),
                'hit_ratio': cache.get_hit_ratio(),
            }
        return stats

    def get_cache_hit_ratios(self) -> Dict[str, float]:
        return {
            name: self._caches[name].get_hit_ratio() if name in self._caches else 0.0
            for name in _CACHE_NAMES
        }

"""
Positioned overlays and cooperative batch application.

Overlays are display-only replacements drawn over buffer text. Applying a
large number of them is split into fixed-size batches; between batches
control goes back to the caller's scheduler so the host stays responsive.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterator, List, Optional, Protocol, Sequence


logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50
DEFAULT_STYLE_TAG = "EcologMasked"
DEFAULT_PRIORITY = 9999


@dataclass(frozen=True)
class OverlaySpec:
    """A replacement text drawn at a buffer position."""
    line: int  # 0-based
    column: int  # 0-based
    display_text: str
    style_tag: str = DEFAULT_STYLE_TAG
    priority: int = DEFAULT_PRIORITY
    conceal_width: Optional[int] = None  # buffer characters hidden, defaults to len(display_text)


class DisplayTarget(Protocol):
    """What a display surface must offer to receive overlays."""

    def is_valid(self) -> bool: ...

    def clear(self) -> None: ...

    def set_overlay(self, spec: OverlaySpec) -> None: ...


class LineBuffer:
    """
    In-memory display target.

    Keeps the real lines untouched and renders overlays onto a copy.
    """

    def __init__(self, lines: Sequence[str]):
        self.lines = list(lines)
        self.overlays: List[OverlaySpec] = []
        self._open = True

    def is_valid(self) -> bool:
        return self._open

    def close(self):
        self._open = False

    def clear(self):
        self.overlays.clear()

    def set_overlay(self, spec: OverlaySpec):
        if not self._open:
            raise RuntimeError("buffer is closed")
        if not 0 <= spec.line < len(self.lines):
            raise IndexError(f"line {spec.line} out of range")
        self.overlays.append(spec)

    def render(self) -> List[str]:
        """Lines as displayed, with overlays drawn in priority order."""
        rendered = list(self.lines)
        for spec in sorted(self.overlays, key=lambda s: s.priority):
            line = rendered[spec.line]
            if spec.column > len(line):
                line = line + " " * (spec.column - len(line))
            width = len(spec.display_text) if spec.conceal_width is None else spec.conceal_width
            end = spec.column + width
            rendered[spec.line] = line[:spec.column] + spec.display_text + line[end:]
        return rendered


class BatchScheduler:
    """
    FIFO queue of cooperative tasks.

    A task is a generator; each step runs it up to its next yield and puts
    it back at the end of the queue until it finishes.
    """

    def __init__(self):
        self._queue: Deque[Iterator] = deque()

    @property
    def pending(self) -> int:
        return len(self._queue)

    def schedule(self, task: Iterator):
        self._queue.append(task)

    def run_once(self) -> bool:
        """
        Advance the next task by one step.

        Returns:
            False when the queue was empty
        """
        if not self._queue:
            return False

        task = self._queue.popleft()
        try:
            next(task)
        except StopIteration:
            return True

        self._queue.append(task)
        return True

    def run_until_idle(self, max_steps: Optional[int] = None) -> int:
        """Run steps until the queue is empty. Returns the number of steps."""
        steps = 0
        while self._queue and (max_steps is None or steps < max_steps):
            self.run_once()
            steps += 1
        return steps


def iter_overlay_batches(
    target: DisplayTarget,
    overlays: Sequence[OverlaySpec],
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> Iterator[int]:
    """
    Apply overlays one batch per step.

    The target is re-checked before every batch; once it is no longer valid
    the remaining overlays are dropped. A failing overlay is skipped without
    affecting the rest of its batch.

    Yields:
        Number of overlays applied in each batch
    """
    for start in range(0, len(overlays), batch_size):
        if not target.is_valid():
            logger.debug("Display target closed, dropping %d overlays", len(overlays) - start)
            return

        applied = 0
        for spec in overlays[start:start + batch_size]:
            try:
                target.set_overlay(spec)
                applied += 1
            except Exception as exc:
                logger.debug("Overlay at %d:%d not applied: %s", spec.line, spec.column, exc)

        yield applied


def apply_overlays_batched(
    target: DisplayTarget,
    overlays: Sequence[OverlaySpec],
    batch_size: int = DEFAULT_BATCH_SIZE,
    scheduler: Optional[BatchScheduler] = None,
):
    """
    Replace the overlays shown on a target.

    The first batch is applied immediately. The remainder is queued on the
    scheduler, or applied right away when no scheduler is given.

    Args:
        target: Display surface
        overlays: Overlays to draw
        batch_size: Overlays per batch
        scheduler: Cooperative scheduler for the remaining batches
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    if not target.is_valid():
        return

    try:
        target.clear()
    except Exception as exc:
        logger.debug("Could not clear display target: %s", exc)

    if not overlays:
        return

    batches = iter_overlay_batches(target, overlays, batch_size)
    next(batches, None)

    if len(overlays) <= batch_size:
        return

    if scheduler is None:
        for _ in batches:
            pass
    else:
        scheduler.schedule(batches)

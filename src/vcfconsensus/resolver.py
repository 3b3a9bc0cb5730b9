"""Same-coordinate duplicate line resolution.

Variant callers commonly emit two data lines at one coordinate, typically an
indel and a SNP. The resolver walks the sorted VCF stream two lines at a time
with the previous pair's second line carried over, and emits exactly one line
per coordinate for pairwise duplicates.

Positions compare on ``(chrom, pos)``. Three or more lines at one coordinate
are resolved pairwise: each step still emits at most one line for the
duplicated coordinate, so such runs may emit that coordinate more than once.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Iterator, List, NamedTuple, Optional, Set, Tuple

from .models import VcfLine

logger = logging.getLogger(__name__)


class ResolvedLine(NamedTuple):
    line: VcfLine
    is_duplicate: bool


class DuplicatePositionResolver:
    """Sliding (previous, current, next) window over VCF data lines.

    Attributes
    ----------
    last_emitted:
        The last line handed out, or None before the first emission.
    duplicates:
        Number of emissions that resolved a same-coordinate pair.
    """

    def __init__(self) -> None:
        self.last_emitted: Optional[VcfLine] = None
        self.duplicates = 0

    def _emit(self, line: VcfLine, is_duplicate: bool) -> Optional[ResolvedLine]:
        if line.is_sentinel:
            return None
        # A line carried over as "previous" may already have been emitted
        # as the "next" of a duplicate pair.
        if self.last_emitted is not None and line.ordinal <= self.last_emitted.ordinal:
            return None
        self.last_emitted = line
        if is_duplicate:
            self.duplicates += 1
            logger.debug("Duplicate position %s:%d resolved to line %d", line.chrom, line.pos, line.ordinal)
        return ResolvedLine(line, is_duplicate)

    def _step(self, previous: VcfLine, current: VcfLine, nxt: VcfLine) -> List[ResolvedLine]:
        if current.position == nxt.position:
            emissions = []
            if previous.position != current.position:
                # Kept deliberately; the bare pair rule drops previous here.
                emissions.append(self._emit(previous, False))
            emissions.append(self._emit(nxt, True))
        elif previous.position == current.position:
            emissions = [self._emit(current, True)]
        elif previous.position == nxt.position:
            emissions = [self._emit(nxt, True)]
        else:
            emissions = [self._emit(previous, False), self._emit(current, False)]
        return [e for e in emissions if e is not None]

    def _flush(self, leftovers: Iterable[VcfLine]) -> List[ResolvedLine]:
        """Emit unresolved tail lines.

        A tail line sharing its coordinate with another tail line or with the
        last emitted line is a duplicate resolution, exactly as in ``_step``.
        """
        last = self.last_emitted
        by_position: Dict[Tuple[str, int], VcfLine] = {}
        duplicated: Set[Tuple[str, int]] = set()
        for line in leftovers:
            if line.is_sentinel:
                continue
            if last is not None and line.ordinal <= last.ordinal:
                continue
            if line.position in by_position or (last is not None and line.position == last.position):
                duplicated.add(line.position)
            # Later lines win a shared coordinate, as "next" does in a pair.
            by_position[line.position] = line
        out: List[ResolvedLine] = []
        for line in sorted(by_position.values(), key=lambda ln: ln.ordinal):
            emitted = self._emit(line, line.position in duplicated)
            if emitted is not None:
                out.append(emitted)
        return out

    def resolve(self, lines: Iterable[VcfLine]) -> Iterator[ResolvedLine]:
        """Yield the lines to convert, each flagged as a duplicate resolution or not."""
        source = iter(lines)
        previous = VcfLine.sentinel()
        trailing: Optional[VcfLine] = None

        while True:
            current = next(source, None)
            if current is None:
                break
            nxt = next(source, None)
            if nxt is None:
                trailing = current
                break
            yield from self._step(previous, current, nxt)
            previous = nxt

        leftovers = [previous] if trailing is None else [previous, trailing]
        yield from self._flush(leftovers)

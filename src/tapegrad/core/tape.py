from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, NamedTuple, Optional, Sequence, Set, Tuple
import logging

from .context import Context
from .memory import Handle

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class TapeEntry:
    op_id: str
    inputs: Tuple[Handle, ...]
    outputs: Tuple[Handle, ...]
    input_shapes: Tuple[Tuple[int, ...], ...]
    context: Context
    index: int
    # depth of the outermost scope that sees this entry
    floor: int = 0

    @property
    def released(self) -> bool:
        return self.context.released


class RecordingScope(NamedTuple):
    marker: int
    depth: int


class Tape:
    """Append-only log of executed operations.

    Recording is a stack of scopes. Every entry appended while at least one
    scope is open belongs to all open scopes at once: a scope is just the
    position of the log when it was pushed, so an outer scope also sees the
    operations executed while an inner one was active.

    :meth:`pause` hides operations from the scopes that are open when it is
    entered. Scopes pushed while paused record normally, and what they
    record stays invisible to the paused ones.
    """

    def __init__(self):
        self._entries: List[TapeEntry] = []
        self._scopes: List[RecordingScope] = []
        self._produced: Set[Handle] = set()
        # scope depth at each active pause, innermost last
        self._pauses: List[int] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"Tape(entries={len(self._entries)}, scopes={len(self._scopes)})"

    @property
    def depth(self) -> int:
        return len(self._scopes)

    def _floor(self) -> int:
        return self._pauses[-1] if self._pauses else 0

    def is_recording(self) -> bool:
        return len(self._scopes) > self._floor()

    def record(self, op_id: str, inputs: Sequence, outputs: Sequence,
               context: Context) -> Optional[TapeEntry]:
        if not self.is_recording():
            return None
        output_handles = tuple(t.handle for t in outputs)
        for handle in output_handles:
            if handle in self._produced:
                raise ValueError(f"{op_id}: output {handle} was already recorded by an earlier entry")
        entry = TapeEntry(
            op_id=op_id,
            inputs=tuple(t.handle for t in inputs),
            outputs=output_handles,
            input_shapes=tuple(t.shape for t in inputs),
            context=context,
            index=len(self._entries),
            floor=self._floor(),
        )
        self._entries.append(entry)
        self._produced.update(output_handles)
        return entry

    def entries_since(self, marker: int) -> Iterator[TapeEntry]:
        # The end is fixed up front: entries recorded while the caller is
        # iterating (e.g. by backward rules) are not part of the sequence.
        end = len(self._entries)
        for index in range(marker, end):
            yield self._entries[index]

    def entries_in(self, scope: RecordingScope) -> Iterator[TapeEntry]:
        """Entries recorded after ``scope`` was pushed that were not hidden from it."""
        for entry in self.entries_since(scope.marker):
            if entry.floor <= scope.depth:
                yield entry

    def _pop_scope(self, scope: RecordingScope) -> bool:
        # Identity, not equality: two scopes may share marker and depth
        for i in range(len(self._scopes) - 1, -1, -1):
            if self._scopes[i] is scope:
                del self._scopes[i]
                return i == len(self._scopes)
        return False

    @contextmanager
    def scope(self) -> Iterator[RecordingScope]:
        scope = RecordingScope(marker=len(self._entries), depth=len(self._scopes))
        self._scopes.append(scope)
        try:
            yield scope
        except BaseException:
            self._pop_scope(scope)
            raise
        if not self._pop_scope(scope):
            raise RuntimeError("recording scopes must be closed in LIFO order")

    @contextmanager
    def pause(self) -> Iterator[None]:
        self._pauses.append(len(self._scopes))
        try:
            yield
        finally:
            self._pauses.pop()

    def release(self, marker: int = 0) -> bool:
        """Drop the saved tensors of every entry recorded after ``marker``.

        Nothing is released while a scope is still open, since the open scope
        may still need those entries for its own backward pass.
        """
        if self._scopes:
            return False
        count = 0
        for entry in self.entries_since(marker):
            if not entry.released:
                entry.context.release()
                count += 1
        logger.debug("released %d tape entries from marker %d", count, marker)
        return True
